"""
ledger.py

Index of live heap allocations keyed by pointer.

Every successful mutation is mirrored into the UsageAccountant so that
its current byte count always equals the sum of the live record sizes.
A rejected operation leaves both the ledger and the accountant untouched.
"""

from typing import Iterator, Optional

from accountant import UsageAccountant
from type_defs import AllocationRecord, ResolvedObject

# Deepest stack trace a record can hold
MAX_STACK_DEPTH = 200


class DuplicateKeyError(Exception):
    """Raised when inserting a pointer that is already live."""

    def __init__(self, existing: AllocationRecord):
        super().__init__(f"Pointer {hex(existing['pointer'])} is already allocated")
        self.existing = existing


class PointerNotFoundError(Exception):
    """Raised when removing a pointer that is not live."""

    def __init__(self, pointer: int):
        super().__init__(f"Pointer {hex(pointer)} not found")
        self.pointer = pointer


class StackTooDeepError(Exception):
    """Raised when a stack trace exceeds MAX_STACK_DEPTH frames."""

    pass


def build_record(pointer: int, size: int, trace: list[ResolvedObject]) -> AllocationRecord:
    """
    Build an allocation record, enforcing the stack depth limit.

    Raises:
        StackTooDeepError: If the trace holds more than MAX_STACK_DEPTH frames.
    """
    if len(trace) > MAX_STACK_DEPTH:
        raise StackTooDeepError(
            f"Stack trace of {hex(pointer)} has {len(trace)} frames, "
            f"at most {MAX_STACK_DEPTH} are supported"
        )

    return {
        'pointer': pointer,
        'size': size,
        'trace': list(trace),
    }


class AllocationLedger:

    def __init__(self, accountant: UsageAccountant):
        self.accountant = accountant
        self._records: dict[int, AllocationRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, pointer: int) -> bool:
        return pointer in self._records

    def lookup(self, pointer: int) -> Optional[AllocationRecord]:
        return self._records.get(pointer)

    def records(self) -> Iterator[AllocationRecord]:
        """Iterate over live records in ascending pointer order."""
        for pointer in sorted(self._records):
            yield self._records[pointer]

    def insert(self, pointer: int, size: int, trace: list[ResolvedObject]) -> AllocationRecord:
        """
        Record a new live allocation.

        Returns:
            The stored record.

        Raises:
            DuplicateKeyError: If the pointer is already live. The error
                               carries the existing record.
            StackTooDeepError: If the trace is too deep.
        """
        existing = self._records.get(pointer)
        if existing is not None:
            raise DuplicateKeyError(existing)

        record = build_record(pointer, size, trace)
        self._records[pointer] = record
        self.accountant.on_insert(size)
        return record

    def remove(self, pointer: int) -> AllocationRecord:
        """
        Forget a live allocation.

        Returns:
            The removed record.

        Raises:
            PointerNotFoundError: If the pointer is not live.
        """
        record = self._records.get(pointer)
        if record is None:
            raise PointerNotFoundError(pointer)

        self.accountant.on_remove(record['size'])
        del self._records[pointer]
        return record

    def replace_key(
        self,
        old_pointer: int,
        new_pointer: int,
        size: int,
        trace: list[ResolvedObject]
    ) -> Optional[AllocationRecord]:
        """
        Apply a reallocation: remove old_pointer, then insert new_pointer.

        The new pointer is checked for duplicates before anything is
        removed, so a rejected reallocation changes nothing. An old pointer
        of 0 (realloc(NULL, size)) or one that is not live does not prevent
        the insertion.

        Returns:
            The record removed for old_pointer, or None if it was not live.

        Raises:
            DuplicateKeyError: If new_pointer is live and is not the
                               pointer being reallocated.
            StackTooDeepError: If the trace is too deep.
        """
        old_live = old_pointer != 0 and old_pointer in self._records

        existing = self._records.get(new_pointer)
        if existing is not None and not (old_live and new_pointer == old_pointer):
            raise DuplicateKeyError(existing)

        # Validate before mutating anything
        record = build_record(new_pointer, size, trace)

        previous = None
        if old_live:
            previous = self.remove(old_pointer)

        self._records[new_pointer] = record
        self.accountant.on_insert(size)
        return previous
