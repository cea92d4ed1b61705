"""Data caches: direct mapped, 2-way and 4-way set associative."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum

from riscysim.isa import to_unsigned32

CACHE_SIZE = 256  # bytes
CACHE_LINE_SIZE = 16  # bytes
_OFFSET_BITS = 4


class CacheMode(IntEnum):
    """Which data cache organisation is in use."""

    DISABLED = 0
    DIRECT_MAPPED = 1
    TWO_WAY = 2
    FOUR_WAY = 3


@dataclass
class CacheBlock:
    """Tag and valid bit of one cache line."""

    tag: int = 0
    valid: bool = False


@dataclass
class CacheSet:
    """The blocks of one set and its LRU bits."""

    blocks: list[CacheBlock] = field(default_factory=list)
    lru_tree: int = 0


class DataCache:
    """A set-associative data cache that tracks tags only.

    ``lookup`` returns the way that holds an address, or ``None`` on a miss.
    ``update`` installs an address: into way ``line`` when it is given, and
    into the way chosen by the replacement policy when ``line`` is ``None``
    or negative.
    """

    mode: CacheMode = CacheMode.DISABLED
    ways: int = 1

    def __init__(self) -> None:
        self.num_sets = (CACHE_SIZE // CACHE_LINE_SIZE) // self.ways
        self._index_bits = self.num_sets.bit_length() - 1
        self.sets: list[CacheSet] = [
            CacheSet(blocks=[CacheBlock() for _ in range(self.ways)])
            for _ in range(self.num_sets)
        ]

    def _split(self, addr: int) -> tuple[int, int]:
        addr = to_unsigned32(addr)
        index = (addr >> _OFFSET_BITS) & (self.num_sets - 1)
        tag = addr >> (_OFFSET_BITS + self._index_bits)
        return index, tag

    def lookup(self, addr: int) -> int | None:
        """Return the way holding ``addr``, or ``None`` on a miss."""
        index, tag = self._split(addr)
        for way, block in enumerate(self.sets[index].blocks):
            if block.valid and block.tag == tag:
                return way
        return None

    def update(self, addr: int, line: int | None = None) -> None:
        """Install ``addr`` in the cache."""
        index, tag = self._split(addr)
        cache_set = self.sets[index]
        hit = line is not None and line >= 0
        way = line if hit else self._victim(cache_set)
        block = cache_set.blocks[way]
        block.tag = tag
        block.valid = True
        self._touch(cache_set, way, hit)

    def _victim(self, cache_set: CacheSet) -> int:
        return 0

    def _touch(self, cache_set: CacheSet, way: int, hit: bool) -> None:
        """Update the replacement state after ``way`` was written."""


class DirectMappedCache(DataCache):
    """16 sets of one block each."""

    mode = CacheMode.DIRECT_MAPPED
    ways = 1

    def update(self, addr: int, line: int | None = None) -> None:
        """Install ``addr``; a direct-mapped cache always writes block 0."""
        super().update(addr, None)


class TwoWayCache(DataCache):
    """8 sets of two blocks; the LRU bit flips on every miss."""

    mode = CacheMode.TWO_WAY
    ways = 2

    def _victim(self, cache_set: CacheSet) -> int:
        for way, block in enumerate(cache_set.blocks):
            if not block.valid:
                return way
        return 0 if cache_set.lru_tree == 0 else 1

    def _touch(self, cache_set: CacheSet, way: int, hit: bool) -> None:
        if not hit:
            cache_set.lru_tree = 0 if cache_set.lru_tree else 1


class FourWayCache(DataCache):
    """4 sets of four blocks with tree pseudo-LRU bits."""

    mode = CacheMode.FOUR_WAY
    ways = 4

    def _victim(self, cache_set: CacheSet) -> int:
        bits = cache_set.lru_tree
        if bits & 0x1 == 0:
            return 2 if bits & 0x2 else 3
        return 1 if bits & 0x2 else 0

    def _touch(self, cache_set: CacheSet, way: int, hit: bool) -> None:
        bits = cache_set.lru_tree
        if way == 0:
            cache_set.lru_tree = 0b11 if bits & 0x2 else 0b10
        elif way == 1:
            cache_set.lru_tree = 0b01 if bits & 0x2 else 0b00
        elif way == 2:
            cache_set.lru_tree = 0b11 if bits & 0x1 else 0b01
        elif way == 3:
            cache_set.lru_tree = 0b10 if bits & 0x1 else 0b00


_CACHES: dict[CacheMode, type[DataCache]] = {
    CacheMode.DIRECT_MAPPED: DirectMappedCache,
    CacheMode.TWO_WAY: TwoWayCache,
    CacheMode.FOUR_WAY: FourWayCache,
}


def make_cache(mode: CacheMode | int) -> DataCache | None:
    """Build the cache for ``mode``; ``None`` when the cache is disabled.

    Raises ``ValueError`` for an unknown mode.
    """
    cache_class = _CACHES.get(CacheMode(mode))
    return cache_class() if cache_class is not None else None