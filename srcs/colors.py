"""
Color styles for Mex terminal output

Centralized rich style definitions used across the project.
Colors are only rendered when the output stream is a terminal.
"""

# Green shades
GREEN = "color(158)"
DARK_GREEN = "color(49)"

# Yellow shades
LIGHT_YELLOW = "color(230)"
DARK_YELLOW = "color(228)"

# Pink/Magenta shades
MAGENTA = "color(219)"
DARK_PINK = "color(205)"

# Red
RED = "color(174)"

# Gray shades
GRAY = "color(240)"       # Used for informational messages
