"""
Tests for ledger.py and accountant.py
"""

import pytest

from accountant import AccountingError, UsageAccountant
from ledger import (
    MAX_STACK_DEPTH, AllocationLedger, DuplicateKeyError,
    PointerNotFoundError, StackTooDeepError,
)


def _frame(key):
    return {'key': key, 'source_path': "a.out", 'display': f"frame_{key:x}"}


def _new_ledger(trigger_bytes=None):
    accountant = UsageAccountant(trigger_bytes)
    return AllocationLedger(accountant), accountant


def test_outstanding_set_and_byte_count():
    ledger, accountant = _new_ledger()

    ledger.insert(0x3000, 30, [_frame(0xa)])
    ledger.insert(0x1000, 10, [_frame(0xb)])
    ledger.insert(0x2000, 20, [_frame(0xc)])
    ledger.remove(0x3000)

    assert [r['pointer'] for r in ledger.records()] == [0x1000, 0x2000]
    assert accountant.current_bytes == 30
    assert accountant.peak_bytes == 60


def test_duplicate_insert_keeps_original():
    ledger, accountant = _new_ledger()
    original = ledger.insert(0x1000, 10, [_frame(0xaa)])

    with pytest.raises(DuplicateKeyError) as excinfo:
        ledger.insert(0x1000, 20, [_frame(0xbb)])

    assert excinfo.value.existing is original
    assert ledger.lookup(0x1000)['size'] == 10
    assert accountant.current_bytes == 10
    assert len(ledger) == 1


def test_remove_unknown_pointer():
    ledger, accountant = _new_ledger()
    ledger.insert(0x1000, 10, [])

    with pytest.raises(PointerNotFoundError):
        ledger.remove(0x2000)

    assert accountant.current_bytes == 10
    assert 0x1000 in ledger


def test_replace_key_moves_record():
    ledger, accountant = _new_ledger()
    ledger.insert(0x1000, 64, [_frame(0xaa)])

    previous = ledger.replace_key(0x1000, 0x2000, 100, [_frame(0xbb)])

    assert previous['size'] == 64
    assert ledger.lookup(0x1000) is None
    assert ledger.lookup(0x2000)['size'] == 100
    assert accountant.current_bytes == 100
    assert accountant.peak_bytes == 100


def test_replace_key_in_place():
    ledger, accountant = _new_ledger()
    ledger.insert(0x1000, 64, [_frame(0xaa)])

    previous = ledger.replace_key(0x1000, 0x1000, 16, [_frame(0xbb)])

    assert previous is not None
    assert ledger.lookup(0x1000)['size'] == 16
    assert ledger.lookup(0x1000)['trace'][0]['key'] == 0xbb
    assert accountant.current_bytes == 16
    assert accountant.peak_bytes == 64


def test_replace_key_without_previous_allocation():
    ledger, accountant = _new_ledger()

    assert ledger.replace_key(0, 0x1000, 8, [_frame(0xaa)]) is None
    assert ledger.replace_key(0x5000, 0x2000, 8, [_frame(0xaa)]) is None

    assert len(ledger) == 2
    assert accountant.current_bytes == 16


def test_replace_key_onto_live_pointer_changes_nothing():
    ledger, accountant = _new_ledger()
    ledger.insert(0x1000, 10, [_frame(0xaa)])
    ledger.insert(0x2000, 20, [_frame(0xbb)])

    with pytest.raises(DuplicateKeyError) as excinfo:
        ledger.replace_key(0x1000, 0x2000, 30, [_frame(0xcc)])

    assert excinfo.value.existing['size'] == 20
    assert ledger.lookup(0x1000)['size'] == 10
    assert ledger.lookup(0x2000)['size'] == 20
    assert accountant.current_bytes == 30


def test_null_realloc_onto_live_null_pointer_is_duplicate():
    ledger, _ = _new_ledger()
    ledger.insert(0, 10, [])

    with pytest.raises(DuplicateKeyError):
        ledger.replace_key(0, 0, 20, [])

    assert ledger.lookup(0)['size'] == 10


def test_stack_depth_limit():
    ledger, accountant = _new_ledger()
    deepest = [_frame(i) for i in range(MAX_STACK_DEPTH)]

    ledger.insert(0x1000, 1, deepest)

    with pytest.raises(StackTooDeepError):
        ledger.insert(0x2000, 1, deepest + [_frame(0xfff)])

    assert 0x2000 not in ledger
    assert accountant.current_bytes == 1


def test_peak_never_decreases():
    ledger, accountant = _new_ledger()
    peaks = []

    for i, size in enumerate([5, 50, 7, 100, 3]):
        ledger.insert(0x1000 + i * 0x100, size, [])
        peaks.append(accountant.peak_bytes)
        if i % 2:
            ledger.remove(0x1000 + i * 0x100)
            peaks.append(accountant.peak_bytes)
        assert accountant.peak_bytes >= accountant.current_bytes

    assert peaks == sorted(peaks)
    assert accountant.peak_bytes == 112


def test_accountant_refuses_negative_count():
    accountant = UsageAccountant()
    accountant.on_insert(10)

    with pytest.raises(AccountingError):
        accountant.on_remove(11)

    assert accountant.current_bytes == 10


def test_should_stop_once_trigger_exceeded():
    accountant = UsageAccountant(trigger_bytes=100)

    accountant.on_insert(100)
    assert not accountant.should_stop()

    accountant.on_insert(1)
    assert accountant.should_stop()

    assert not UsageAccountant().should_stop()
