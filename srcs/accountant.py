"""
accountant.py

Running totals of live heap bytes.
"""

from typing import Optional


class AccountingError(Exception):
    """Raised when a removal would make the live byte count negative."""

    pass


class UsageAccountant:

    def __init__(self, trigger_bytes: Optional[int] = None):
        self.current_bytes = 0
        self.peak_bytes = 0
        self.trigger_bytes = trigger_bytes

    def on_insert(self, size: int) -> None:
        self.current_bytes += size
        if self.current_bytes > self.peak_bytes:
            self.peak_bytes = self.current_bytes

    def on_remove(self, size: int) -> None:
        if size > self.current_bytes:
            raise AccountingError(
                f"Removing {size} bytes with only {self.current_bytes} bytes live"
            )
        self.current_bytes -= size

    def should_stop(self) -> bool:
        """True once the live byte count exceeds the trigger threshold."""
        if self.trigger_bytes is None:
            return False
        return self.current_bytes > self.trigger_bytes
