from decimal import Decimal

import pytest

from ticketops.apps.imports.policies import REASON_VALIDATION_FAILED
from ticketops.apps.imports.validators import (
    first_present,
    is_row_acceptable,
    parse_number,
    partition_delivery_rows,
)

COMPLETE = {"date": "2025-01-15", "truck": "T-101", "gallons": 500}


def test_complete_row_passes_with_nothing_else():
    assert is_row_acceptable(COMPLETE)


@pytest.mark.parametrize("missing", ["date", "truck", "gallons"])
def test_row_missing_any_rule_is_rejected(missing):
    row = {k: v for k, v in COMPLETE.items() if k != missing}
    assert not is_row_acceptable(row)


def test_driver_or_ticket_satisfy_ticket_rule():
    assert is_row_acceptable({"date": "2025-01-15", "driver": "Sam", "amount": "12.50"})
    assert is_row_acceptable({"Delivery_Date": "2025-01-15", "Ticket": "A-9", "qty": 1})


def test_amount_must_be_positive_number():
    base = {"date": "2025-01-15", "truck": "T-1"}
    assert not is_row_acceptable({**base, "amount": 0})
    assert not is_row_acceptable({**base, "amount": "-4"})
    assert not is_row_acceptable({**base, "amount": "n/a"})
    assert not is_row_acceptable({**base, "amount": True})
    assert is_row_acceptable({**base, "amount": "$1,500.00"})
    # any alias may carry the positive value
    assert is_row_acceptable({**base, "amount": 0, "gallons": "300"})


def test_blank_strings_do_not_count_as_present():
    assert not is_row_acceptable({"date": "   ", "truck": "T-1", "qty": 5})
    assert not is_row_acceptable({"date": "2025-01-15", "truck": "", "qty": 5})


def test_non_mapping_row_is_rejected():
    assert not is_row_acceptable(["2025-01-15", "T-1", 5])


def test_parse_number():
    assert parse_number(" $1,234.50 ") == Decimal("1234.50")
    assert parse_number(7) == Decimal("7")
    assert parse_number(2.5) == Decimal("2.5")
    assert parse_number("") is None
    assert parse_number("NaN") is None
    assert parse_number(False) is None
    assert parse_number({"v": 1}) is None


def test_first_present_is_case_insensitive_and_ordered():
    row = {"GALLONS": 300, "Qty": ""}
    assert first_present(row, ("qty", "gallons")) == ("gallons", 300)
    assert first_present(row, ("quantity",)) is None


def test_partition_keeps_order_and_reason():
    rows = [
        (0, COMPLETE),
        (1, {"truck": "T-2", "gallons": 300}),
        (2, {**COMPLETE, "truck": "T-3"}),
    ]
    accepted, rejected = partition_delivery_rows(rows)
    assert [i for i, _ in accepted] == [0, 2]
    assert len(rejected) == 1
    assert rejected[0].index == 1
    assert rejected[0].row == {"truck": "T-2", "gallons": 300}
    assert rejected[0].reason == REASON_VALIDATION_FAILED == "Missing required fields or validation failed"
