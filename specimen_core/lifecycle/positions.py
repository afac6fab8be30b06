# specimen_core/lifecycle/positions.py
from __future__ import annotations

from dataclasses import dataclass

# Physical rack / envelope limit; position is stored in a small integer column.
BATCH_CAPACITY = 255


class CapacityExceeded(Exception):
    """Raised when a position beyond BATCH_CAPACITY is requested."""

    def __init__(self, position: int, capacity: int = BATCH_CAPACITY):
        self.position = position
        self.capacity = capacity
        super().__init__(
            f"Position {position} exceeds batch capacity of {capacity}."
        )


@dataclass(frozen=True)
class BatchPosition:
    """
    A position-in-batch, always within 1..BATCH_CAPACITY.

    Construct via BatchPosition.after(count) when allocating; the only place
    the capacity bound is enforced.
    """

    value: int

    def __post_init__(self):
        if not 1 <= int(self.value) <= BATCH_CAPACITY:
            raise CapacityExceeded(int(self.value))

    @classmethod
    def first(cls) -> "BatchPosition":
        return cls(1)

    @classmethod
    def after(cls, occupied: int) -> "BatchPosition":
        return cls(int(occupied) + 1)

    @property
    def is_last(self) -> bool:
        return self.value == BATCH_CAPACITY

    @property
    def remaining(self) -> int:
        return BATCH_CAPACITY - self.value

    def __int__(self) -> int:
        return self.value
