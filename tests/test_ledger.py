import json
import math
from datetime import date, datetime

import pytest

from ledger import (
    InsufficientFunds,
    InvalidAmount,
    InvalidImport,
    InvalidInput,
    Ledger,
    NotFound,
)
from models import TransactionType
from periods import period_start
from schemas import TransactionRecord


def _txn(
    txn_id: int,
    type: TransactionType,
    amount: float,
    day: date,
    category=None,
    correction: bool = False,
    description: str = "Entry",
) -> TransactionRecord:
    return TransactionRecord(
        id=txn_id,
        description=description,
        amount=amount,
        type=type,
        category=category,
        date=datetime.combine(day, datetime.min.time()),
        is_balance_correction=correction,
    )


def _wire(records) -> list[dict]:
    return [t.to_wire() for t in records]


def _paycheck_ledger() -> Ledger:
    ledger = Ledger()
    ledger.record_transaction("Paycheck", 1000, "income", None, "2024-01-25")
    return ledger


def test_paycheck_then_groceries_scenario() -> None:
    ledger = _paycheck_ledger()
    assert ledger.compute_balance().balance == 1000

    with pytest.raises(InsufficientFunds):
        ledger.record_transaction("Groceries", 1100, "expense", "Food", "2024-01-26")

    ledger.record_transaction("Groceries", 50, "expense", "Food", "2024-01-26")
    summary = ledger.compute_balance()
    assert summary.balance == 950
    assert summary.total_income == 1000
    assert summary.total_expenses == 50

    report = ledger.category_period_report("Food", period_start(date(2024, 1, 26)))
    assert len(report.entries) == 1
    assert report.total == 50
    assert report.period.start == date(2024, 1, 25)


def test_rejected_expense_leaves_ledger_unmodified() -> None:
    ledger = _paycheck_ledger()
    ledger.record_transaction("Groceries", 50, "expense", "Food", "2024-01-26")
    before = _wire(ledger.transactions)

    with pytest.raises(InsufficientFunds) as excinfo:
        ledger.record_transaction("Rent", 2000, "expense", "Housing", "2024-01-27")

    assert excinfo.value.available == 950
    assert _wire(ledger.transactions) == before


def test_new_transactions_are_prepended() -> None:
    ledger = _paycheck_ledger()
    ledger.record_transaction("Bonus", 10, "income", None, "2023-01-01")
    assert [t.description for t in ledger.transactions] == ["Bonus", "Paycheck"]


def test_balance_matches_closed_form() -> None:
    ledger = Ledger(balance_offset=12.5)
    ledger.record_transaction("Salary", 2000, TransactionType.income)
    ledger.record_transaction("Coffee", 3.2, TransactionType.expense, "Food")
    ledger.record_transaction("Refund", 19.99, TransactionType.income)
    ledger.record_transaction("Train", 47.1, TransactionType.expense, "Transport")

    income = sum(t.amount for t in ledger.transactions if t.type == "income")
    expenses = sum(t.amount for t in ledger.transactions if t.type == "expense")
    assert ledger.compute_balance().balance == pytest.approx(income - expenses + 12.5)


def test_correction_entries_do_not_count_towards_balance() -> None:
    ledger = Ledger(
        [
            _txn(1, TransactionType.income, 100, date(2024, 1, 1)),
            _txn(2, TransactionType.expense, 40, date(2024, 1, 2), "Misc", True),
        ]
    )
    assert ledger.compute_balance().balance == 100
    assert [t.id for t in ledger.visible_transactions()] == [1]


@pytest.mark.parametrize(
    ("kwargs", "error"),
    [
        ({"description": "  ", "amount": 5, "type": "income"}, InvalidInput),
        ({"description": "X", "amount": 0, "type": "income"}, InvalidAmount),
        ({"description": "X", "amount": -5, "type": "income"}, InvalidAmount),
        ({"description": "X", "amount": math.nan, "type": "income"}, InvalidAmount),
        ({"description": "X", "amount": math.inf, "type": "income"}, InvalidAmount),
        ({"description": "X", "amount": "12", "type": "income"}, InvalidAmount),
        ({"description": "X", "amount": True, "type": "income"}, InvalidAmount),
        ({"description": "X", "amount": 5, "type": "transfer"}, InvalidInput),
        ({"description": "X", "amount": 5, "type": "expense"}, InvalidInput),
        (
            {"description": "X", "amount": 5, "type": "income", "date": "yesterday"},
            InvalidInput,
        ),
    ],
)
def test_record_transaction_validation(kwargs, error) -> None:
    ledger = Ledger([_txn(1, TransactionType.income, 100, date(2024, 1, 1))])
    with pytest.raises(error):
        ledger.record_transaction(**kwargs)
    assert len(ledger.transactions) == 1


def test_ids_stay_unique_within_one_clock_tick() -> None:
    ledger = Ledger(clock=lambda: 1_700_000_000.0)
    ids = [
        ledger.record_transaction(f"Income {i}", 1, "income").id for i in range(5)
    ]
    assert len(set(ids)) == 5
    assert ids[0] == 1_700_000_000_000
    assert ids == sorted(ids)


def test_delete_transaction() -> None:
    ledger = _paycheck_ledger()
    txn = ledger.transactions[0]
    with pytest.raises(NotFound):
        ledger.delete_transaction(txn.id + 1)
    ledger.delete_transaction(txn.id)
    assert ledger.transactions == []


def test_edit_transaction_updates_in_place() -> None:
    ledger = _paycheck_ledger()
    groceries = ledger.record_transaction("Groceries", 50, "expense", "Food")
    ledger.edit_transaction(groceries.id, "Groceries and wine", 75)
    assert ledger.get(groceries.id).description == "Groceries and wine"
    assert ledger.get(groceries.id).amount == 75
    assert ledger.compute_balance().balance == 925


def test_edit_transaction_validation() -> None:
    ledger = _paycheck_ledger()
    groceries = ledger.record_transaction("Groceries", 50, "expense", "Food")
    with pytest.raises(NotFound):
        ledger.edit_transaction(999, "Nope", 10)
    with pytest.raises(InvalidAmount):
        ledger.edit_transaction(groceries.id, "Groceries", 0)
    with pytest.raises(InvalidAmount):
        ledger.edit_transaction(groceries.id, "Groceries", "ten")
    with pytest.raises(InvalidInput):
        ledger.edit_transaction(groceries.id, "", 10)
    assert ledger.get(groceries.id).amount == 50


def test_edit_check_counts_corrections_and_ignores_offset() -> None:
    ledger = Ledger(
        [
            _txn(3, TransactionType.expense, 30, date(2024, 1, 3), "Food"),
            _txn(2, TransactionType.expense, 50, date(2024, 1, 2), "Misc", True),
            _txn(1, TransactionType.income, 100, date(2024, 1, 1)),
        ],
        balance_offset=500,
    )
    assert ledger.compute_balance().balance == 570
    assert ledger.available_for_edit(3) == 50

    with pytest.raises(InsufficientFunds):
        ledger.edit_transaction(3, "Food", 60)
    ledger.edit_transaction(3, "Food", 50)
    assert ledger.get(3).amount == 50


def test_editing_income_is_checked_against_other_expenses() -> None:
    ledger = _paycheck_ledger()
    paycheck = ledger.transactions[0]
    ledger.record_transaction("Rent", 900, "expense", "Housing")
    assert ledger.available_for_edit(paycheck.id) == 100

    with pytest.raises(InsufficientFunds) as excinfo:
        ledger.edit_transaction(paycheck.id, "Paycheck", 500)
    assert excinfo.value.available == 100
    assert ledger.get(paycheck.id).amount == 1000

    ledger.edit_transaction(paycheck.id, "Paycheck", 100)
    assert ledger.compute_balance().balance == -800


@pytest.mark.parametrize("asserted", [0, 1234.56, -80.25, 950])
def test_set_balance_yields_asserted_balance(asserted) -> None:
    ledger = _paycheck_ledger()
    ledger.record_transaction("Groceries", 50.1, "expense", "Food")
    ledger.balance_offset = 3.3
    ledger.set_balance(asserted)
    assert ledger.compute_balance().balance == pytest.approx(asserted)


def test_set_balance_without_difference_is_noop() -> None:
    ledger = _paycheck_ledger()
    assert ledger.set_balance(1000) is False
    assert ledger.balance_offset == 0
    with pytest.raises(InvalidInput):
        ledger.set_balance("lots")
    with pytest.raises(InvalidInput):
        ledger.set_balance(math.nan)


def test_category_report_percentages_use_initial_balance() -> None:
    ledger = Ledger(
        [
            _txn(7, TransactionType.expense, 20, date(2024, 2, 25), "Food"),
            _txn(6, TransactionType.expense, 50, date(2024, 2, 1), "Food"),
            _txn(5, TransactionType.expense, 30, date(2024, 2, 2), "Fun"),
            _txn(4, TransactionType.expense, 5, date(2024, 1, 30), "Food", True),
            _txn(3, TransactionType.expense, 100, date(2024, 1, 26), "Food"),
            _txn(2, TransactionType.expense, 90, date(2024, 1, 11), "Misc", True),
            _txn(1, TransactionType.income, 1000, date(2024, 1, 10)),
        ]
    )
    report = ledger.category_period_report("Food", date(2024, 1, 25))

    assert [t.id for t in report.entries] == [6, 3]
    assert report.total == 150
    assert report.initial_balance == 910
    assert report.total_percentage == pytest.approx(50 / 910 * 100 + 100 / 910 * 100)


def test_category_report_without_positive_initial_balance() -> None:
    ledger = Ledger(
        [
            _txn(2, TransactionType.expense, 10, date(2024, 1, 26), "Food"),
            _txn(1, TransactionType.income, 10, date(2024, 1, 26)),
        ]
    )
    report = ledger.category_period_report("Food", date(2024, 1, 25))
    assert report.initial_balance == 0
    assert report.total == 10
    assert report.total_percentage == 0


def test_earliest_date() -> None:
    assert Ledger().earliest_date() is None
    ledger = Ledger(
        [
            _txn(2, TransactionType.income, 10, date(2024, 3, 1)),
            _txn(1, TransactionType.income, 10, date(2023, 12, 30)),
        ]
    )
    assert ledger.earliest_date() == date(2023, 12, 30)


def test_export_import_round_trip() -> None:
    ledger = _paycheck_ledger()
    ledger.record_transaction("Groceries", 50, "expense", "Food", "2024-01-26")
    ledger.record_transaction("Snack", 2.5, "expense", "Food")
    ledger.balance_offset = -12.75

    bundle = ledger.export_bundle()
    wire = json.loads(json.dumps(bundle.to_wire()))
    assert wire["exportVersion"] == 1
    assert set(wire) == {"exportVersion", "exportedAt", "transactions", "balanceOffset"}

    restored = Ledger()
    restored.import_bundle(wire)
    assert _wire(restored.transactions) == _wire(ledger.transactions)
    assert restored.balance_offset == ledger.balance_offset

    ledger.import_bundle(ledger.export_bundle())
    assert _wire(ledger.transactions) == _wire(restored.transactions)


def _valid_entry(**overrides):
    entry = {
        "id": 1,
        "description": "Paycheck",
        "amount": 1000,
        "type": "income",
        "category": None,
        "date": "2024-01-25T08:00:00.000Z",
    }
    entry.update(overrides)
    return entry


@pytest.mark.parametrize(
    ("bundle", "reason"),
    [
        ([], "Invalid JSON structure"),
        ("backup", "Invalid JSON structure"),
        ({"balanceOffset": 3}, "Missing transactions array"),
        ({"transactions": {"0": {}}}, "Missing transactions array"),
        ({"transactions": [None]}, "Invalid transaction entry"),
        ({"transactions": [_valid_entry(amount="10")]}, "Transaction amount invalid"),
        ({"transactions": [_valid_entry(amount=math.nan)]}, "Transaction amount invalid"),
        ({"transactions": [_valid_entry(amount=10**400)]}, "Transaction amount invalid"),
        ({"transactions": [_valid_entry(type="transfer")]}, "Transaction type invalid"),
        ({"transactions": [_valid_entry(date="")]}, "Transaction date missing"),
        ({"transactions": [_valid_entry(date="someday")]}, "Transaction date invalid"),
        (
            {"exportVersion": 2, "transactions": [_valid_entry()]},
            "Unsupported export version",
        ),
    ],
)
def test_invalid_import_leaves_ledger_untouched(bundle, reason) -> None:
    ledger = _paycheck_ledger()
    ledger.balance_offset = 4.0
    before = _wire(ledger.transactions)

    with pytest.raises(InvalidImport, match=reason):
        ledger.import_bundle(bundle)

    assert _wire(ledger.transactions) == before
    assert ledger.balance_offset == 4.0


def test_import_stops_at_first_bad_row() -> None:
    ledger = Ledger()
    bundle = {
        "transactions": [
            _valid_entry(id=1),
            _valid_entry(id=2, type="gift"),
            _valid_entry(id=3, amount=None),
        ]
    }
    with pytest.raises(InvalidImport, match="Transaction type invalid"):
        ledger.import_bundle(bundle)
    assert ledger.transactions == []


def test_import_defaults_and_legacy_corrections() -> None:
    ledger = Ledger(balance_offset=99)
    ledger.import_bundle(
        {
            "transactions": [
                _valid_entry(
                    id=2,
                    description="Manual Balance Correction",
                    type="expense",
                    amount=40,
                ),
                _valid_entry(id=1),
            ],
            "balanceOffset": "12",
        }
    )
    assert ledger.balance_offset == 0
    assert ledger.transactions[0].is_balance_correction is True
    assert ledger.transactions[1].is_balance_correction is False
    assert ledger.compute_balance().balance == 1000


def test_import_reassigns_missing_and_duplicate_ids() -> None:
    ledger = Ledger(clock=lambda: 0.0)
    entry_without_id = _valid_entry()
    del entry_without_id["id"]
    ledger.import_bundle(
        {
            "transactions": [
                _valid_entry(id=5),
                _valid_entry(id=5, description="Twin"),
                entry_without_id,
            ]
        }
    )
    ids = [t.id for t in ledger.transactions]
    assert ids[0] == 5
    assert len(set(ids)) == 3
    assert min(ids[1:]) > 5


def test_import_treats_oversized_ids_as_missing() -> None:
    ledger = Ledger(clock=lambda: 0.0)
    ledger.import_bundle(
        {"transactions": [_valid_entry(id=10**400), _valid_entry(id=7)]}
    )
    assert [t.id for t in ledger.transactions] == [8, 7]


def test_oversized_numbers_are_rejected_outside_import() -> None:
    ledger = _paycheck_ledger()
    with pytest.raises(InvalidAmount):
        ledger.record_transaction("Yacht", 10**400, "expense", "Toys")
    with pytest.raises(InvalidInput):
        ledger.set_balance(10**400)
    ledger.import_bundle(
        {"transactions": [_valid_entry()], "balanceOffset": 10**400}
    )
    assert ledger.balance_offset == 0
