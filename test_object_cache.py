"""
Tests for object_cache.py
"""

from object_cache import ObjectCache, unresolved_display
from symbolizer import SymbolizerError


class RecordingSymbolizer:
    """Symbolizer stub that remembers every call."""

    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    def __call__(self, source_path, offset):
        self.calls.append((source_path, offset))
        if self.fail:
            raise SymbolizerError("no symbol")
        return f"func_{offset:x} at {source_path}:1"


def test_resolve_calls_symbolizer_once_per_key():
    symbolizer = RecordingSymbolizer()
    cache = ObjectCache(symbolizer)

    first = cache.resolve(0x4011a6, "/bin/leaky", 0x11a6)
    second = cache.resolve(0x4011a6, "/other/path", 0x99)

    assert first is second
    assert first['display'] == "func_11a6 at /bin/leaky:1"
    assert symbolizer.calls == [("/bin/leaky", 0x11a6)]
    assert len(cache) == 1


def test_resolve_uses_default_image_without_path():
    symbolizer = RecordingSymbolizer()
    cache = ObjectCache(symbolizer, default_image="./leaky")

    obj = cache.resolve(0x10, "", 0x10)

    assert symbolizer.calls == [("./leaky", 0x10)]
    assert obj['source_path'] == "./leaky"


def test_resolution_failure_falls_back_to_placeholder():
    symbolizer = RecordingSymbolizer(fail=True)
    cache = ObjectCache(symbolizer)

    obj = cache.resolve(0xaa, "/bin/leaky", 0xaa)

    assert obj['display'] == "0x00000000000000aa (unresolved)"
    assert cache.resolve(0xaa, "/bin/leaky", 0xaa) is obj
    assert len(symbolizer.calls) == 1


def test_unregistered_frame_gets_cached_placeholder():
    symbolizer = RecordingSymbolizer()
    cache = ObjectCache(symbolizer)

    first = cache.resolve_unregistered(0xbb)
    second = cache.resolve_unregistered(0xbb)

    assert first is second
    assert first['display'] == unresolved_display(0xbb)
    assert symbolizer.calls == []


def test_registered_frame_wins_over_placeholder():
    cache = ObjectCache(RecordingSymbolizer())

    registered = cache.resolve(0xcc, "/bin/leaky", 0xcc)

    assert cache.resolve_unregistered(0xcc) is registered
    assert cache.get(0xcc) is registered
    assert cache.get(0xdd) is None
    assert 0xcc in cache
