"""Data memory model for the pipeline simulator."""

from typing import Optional
from .isa import MEMORY_SIZE, to_signed32


class Memory:
    """Word-addressable data memory accessed with byte addresses.

    The contents are an immutable tuple that is replaced on every write, so a
    tuple handed out by ``words`` never changes underneath its holder.
    Out-of-range reads return 0 and out-of-range writes are dropped.
    """

    def __init__(
        self,
        size: int = MEMORY_SIZE,
        initial_values: Optional[dict[int, int]] = None,
    ):
        self.size = size
        self._data: tuple[int, ...] = (0,) * size

        # Initialize with provided values (byte addresses)
        if initial_values:
            for addr, val in initial_values.items():
                self.write(addr, val)

    @property
    def words(self) -> tuple[int, ...]:
        return self._data

    def _index(self, addr: int) -> Optional[int]:
        """Map a byte address to a word index, or None when out of range."""
        if addr < 0:
            return None
        index = addr >> 2
        if index >= self.size:
            return None
        return index

    def read(self, addr: int) -> int:
        """Read the word containing byte address ``addr``."""
        index = self._index(addr)
        if index is None:
            return 0
        return self._data[index]

    def write(self, addr: int, value: int) -> None:
        """Write a normalized word at byte address ``addr``."""
        index = self._index(addr)
        if index is None:
            return
        data = list(self._data)
        data[index] = to_signed32(value)
        self._data = tuple(data)

    def snapshot(self) -> list[int]:
        """Return a copy of the entire memory."""
        return list(self._data)

    def clone(self) -> "Memory":
        copy = Memory.__new__(Memory)
        copy.size = self.size
        copy._data = self._data
        return copy
