"""
object_cache.py

Memoized symbol resolution for stack frames.

Each distinct frame key (a raw return address) is resolved at most once.
The first resolution wins and the resulting object is shared by every
allocation record whose stack trace contains that frame.
"""

from typing import Callable, Optional

from symbolizer import DEFAULT_IMAGE, SymbolizerError
from type_defs import ResolvedObject

# Symbolizer signature: (source_path, offset) -> display string
Symbolize = Callable[[str, int], str]


def unresolved_display(frame_key: int) -> str:
    """Placeholder shown for frames that could not be resolved."""
    return f"{frame_key:#018x} (unresolved)"


class ObjectCache:

    def __init__(self, symbolize: Symbolize, default_image: str = DEFAULT_IMAGE):
        self.symbolize = symbolize
        self.default_image = default_image
        self.objects: dict[int, ResolvedObject] = {}

    def __len__(self) -> int:
        return len(self.objects)

    def __contains__(self, frame_key: int) -> bool:
        return frame_key in self.objects

    def get(self, frame_key: int) -> Optional[ResolvedObject]:
        return self.objects.get(frame_key)

    def resolve(self, frame_key: int, source_path: str, offset: int) -> ResolvedObject:
        """
        Return the resolved object for a frame, resolving it on first sight.

        Args:
            frame_key: Raw return address identifying the frame.
            source_path: Binary image containing the frame. Empty means
                         the default image.
            offset: Offset of the frame inside the image.

        Returns:
            The cached object. Repeated calls ignore source_path and offset.
        """
        if frame_key in self.objects:
            return self.objects[frame_key]

        image = source_path or self.default_image

        try:
            display = self.symbolize(image, offset)
        except SymbolizerError:
            display = unresolved_display(frame_key)

        obj: ResolvedObject = {
            'key': frame_key,
            'source_path': image,
            'display': display,
        }
        self.objects[frame_key] = obj
        return obj

    def resolve_unregistered(self, frame_key: int) -> ResolvedObject:
        """Return the object for a frame that was never registered.

        A placeholder is cached on first sight so that later references to
        the same frame share it.
        """
        if frame_key in self.objects:
            return self.objects[frame_key]

        obj: ResolvedObject = {
            'key': frame_key,
            'source_path': "",
            'display': unresolved_display(frame_key),
        }
        self.objects[frame_key] = obj
        return obj
