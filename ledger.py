"""In-memory ledger: the transaction list, the balance offset and every query over them.

The ledger never persists anything itself; ``services.LedgerService`` loads one
from the local store and writes it back after each mutation.
"""

from __future__ import annotations

import logging
import math
import numbers
import time
from dataclasses import dataclass
from datetime import date, datetime, time as dt_time, timezone
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from pydantic import ValidationError

from models import TransactionType
from periods import PayPeriod, local_day, period_contains, period_end, period_start
from schemas import EXPORT_VERSION, ExportBundle, TransactionRecord

logger = logging.getLogger(__name__)

# Descriptions older backups used to mark manual corrections before the
# explicit isBalanceCorrection flag existed.
LEGACY_CORRECTION_MARKERS = ("Balance Adjustment", "Manual Balance Correction")


class LedgerError(ValueError):
    pass


class InvalidInput(LedgerError):
    pass


class InvalidAmount(InvalidInput):
    pass


class InsufficientFunds(LedgerError):
    def __init__(self, message: str, available: float) -> None:
        super().__init__(message)
        self.available = available


class NotFound(LedgerError):
    pass


class InvalidImport(LedgerError):
    pass


@dataclass(frozen=True)
class BalanceSummary:
    balance: float
    total_income: float
    total_expenses: float


@dataclass(frozen=True)
class CategoryPeriodReport:
    category: str
    period: PayPeriod
    entries: list[TransactionRecord]
    total: float
    total_percentage: float
    initial_balance: float


def _is_number(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def _finite_float(value: Any) -> Optional[float]:
    """``value`` as a finite float; None when it is not a number or does not fit one."""
    if not _is_number(value):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def _require_amount(value: Any) -> float:
    amount = _finite_float(value)
    if amount is None or amount <= 0:
        raise InvalidAmount("Please enter a valid amount")
    return amount


def _require_text(value: Optional[str], message: str) -> str:
    clean = value.strip() if isinstance(value, str) else ""
    if not clean:
        raise InvalidInput(message)
    return clean


def _coerce_date(value: Union[None, str, date, datetime]) -> datetime:
    if value is None:
        return datetime.now(timezone.utc)
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, dt_time(0, 0))
    try:
        return datetime.fromisoformat(str(value).strip())
    except ValueError as exc:
        raise InvalidInput(f"Invalid date: {value}") from exc


def is_legacy_correction(description: str) -> bool:
    return any(marker in description for marker in LEGACY_CORRECTION_MARKERS)


class Ledger:
    def __init__(
        self,
        transactions: Optional[Iterable[TransactionRecord]] = None,
        balance_offset: float = 0.0,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.transactions: list[TransactionRecord] = list(transactions or [])
        self.balance_offset = float(balance_offset)
        self._clock = clock

    # -- ids -----------------------------------------------------------------

    def _next_id(self) -> int:
        candidate = int(self._clock() * 1000)
        highest = max((t.id for t in self.transactions), default=0)
        return max(candidate, highest + 1)

    # -- lookups -------------------------------------------------------------

    def get(self, transaction_id: int) -> TransactionRecord:
        for txn in self.transactions:
            if txn.id == transaction_id:
                return txn
        raise NotFound("Transaction not found")

    def visible_transactions(self) -> list[TransactionRecord]:
        return [t for t in self.transactions if not t.is_balance_correction]

    def earliest_date(self) -> Optional[date]:
        if not self.transactions:
            return None
        return min(local_day(t.date) for t in self.transactions)

    # -- balances ------------------------------------------------------------

    def compute_balance(self) -> BalanceSummary:
        counted = self.visible_transactions()
        income = sum(t.amount for t in counted if t.type == TransactionType.income)
        expenses = sum(t.amount for t in counted if t.type == TransactionType.expense)
        return BalanceSummary(
            balance=income - expenses + self.balance_offset,
            total_income=income,
            total_expenses=expenses,
        )

    def available_for_edit(self, transaction_id: int) -> float:
        """Income minus every other expense, corrections included and offset left out."""
        income = sum(
            t.amount for t in self.transactions if t.type == TransactionType.income
        )
        other_expenses = sum(
            t.amount
            for t in self.transactions
            if t.type == TransactionType.expense and t.id != transaction_id
        )
        return income - other_expenses

    def initial_balance(self, start: date) -> float:
        """Running balance just before ``start``, over every stored transaction."""
        start_day = local_day(start)
        income = 0.0
        expenses = 0.0
        for txn in self.transactions:
            if local_day(txn.date) >= start_day:
                continue
            if txn.type == TransactionType.income:
                income += txn.amount
            elif txn.type == TransactionType.expense:
                expenses += txn.amount
        return income - expenses

    # -- mutations -----------------------------------------------------------

    def record_transaction(
        self,
        description: str,
        amount: Any,
        type: Union[TransactionType, str],
        category: Optional[str] = None,
        date: Union[None, str, datetime] = None,
    ) -> TransactionRecord:
        clean_description = _require_text(description, "Please enter a description")
        clean_amount = _require_amount(amount)
        try:
            txn_type = TransactionType(type)
        except ValueError as exc:
            raise InvalidInput("Please choose income or expense") from exc
        clean_category = (category or "").strip() or None
        if txn_type == TransactionType.expense and not clean_category:
            raise InvalidInput("Please select a category")
        occurred = _coerce_date(date)

        if txn_type == TransactionType.expense:
            balance = self.compute_balance().balance
            if clean_amount > balance:
                raise InsufficientFunds(
                    f"Insufficient funds: current balance is {balance:.2f}", balance
                )

        txn = TransactionRecord(
            id=self._next_id(),
            description=clean_description,
            amount=clean_amount,
            type=txn_type,
            category=clean_category,
            date=occurred,
        )
        self.transactions.insert(0, txn)
        return txn

    def delete_transaction(self, transaction_id: int) -> TransactionRecord:
        txn = self.get(transaction_id)
        self.transactions.remove(txn)
        return txn

    def edit_transaction(
        self, transaction_id: int, new_description: str, new_amount: Any
    ) -> TransactionRecord:
        txn = self.get(transaction_id)
        clean_description = _require_text(
            new_description, "Please enter a valid description"
        )
        clean_amount = _require_amount(new_amount)
        available = self.available_for_edit(transaction_id)
        if clean_amount > available:
            raise InsufficientFunds(
                f"Insufficient funds: available balance is {available:.2f}",
                available,
            )
        txn.description = clean_description
        txn.amount = clean_amount
        return txn

    def set_balance(self, asserted: Any) -> bool:
        """Shift the offset so the balance reads ``asserted``; False when nothing changed."""
        target = _finite_float(asserted)
        if target is None:
            raise InvalidInput("Please enter a valid number")
        difference = target - self.compute_balance().balance
        if difference == 0:
            return False
        self.balance_offset += difference
        return True

    # -- reports -------------------------------------------------------------

    def category_period_report(
        self, category: str, start: date
    ) -> CategoryPeriodReport:
        start_day = period_start(start)
        entries = [
            t
            for t in self.transactions
            if t.type == TransactionType.expense
            and t.category == category
            and not t.is_balance_correction
            and period_contains(t.date, start_day)
        ]
        total = sum(t.amount for t in entries)
        initial = self.initial_balance(start_day)
        percentage = 0.0
        if initial > 0:
            percentage = sum(t.amount / initial * 100 for t in entries)
        return CategoryPeriodReport(
            category=category,
            period=PayPeriod(start=start_day, end=period_end(start_day)),
            entries=entries,
            total=total,
            total_percentage=percentage,
            initial_balance=initial,
        )

    # -- backup --------------------------------------------------------------

    def export_bundle(self, now: Optional[datetime] = None) -> ExportBundle:
        return ExportBundle(
            export_version=EXPORT_VERSION,
            exported_at=now or datetime.now(timezone.utc),
            transactions=[t.model_copy() for t in self.transactions],
            balance_offset=self.balance_offset,
        )

    def import_bundle(self, bundle: Any) -> None:
        """Replace the whole ledger with a backup; nothing changes unless every row is valid."""
        if isinstance(bundle, ExportBundle):
            bundle = bundle.to_wire()
        if not isinstance(bundle, Mapping):
            raise InvalidImport("Invalid JSON structure")

        version = bundle.get("exportVersion")
        version_number = _finite_float(version)
        if version is not None and not (
            version_number is not None
            and version_number.is_integer()
            and 1 <= int(version) <= EXPORT_VERSION
        ):
            raise InvalidImport(f"Unsupported export version: {version!r}")

        raw = bundle.get("transactions")
        if not isinstance(raw, list):
            raise InvalidImport("Missing transactions array")
        parsed = [self._parse_import_entry(entry) for entry in raw]
        records = self._assign_import_ids(parsed)

        balance_offset = _finite_float(bundle.get("balanceOffset"))
        if balance_offset is None:
            balance_offset = 0.0

        self.transactions = records
        self.balance_offset = balance_offset

    def _parse_import_entry(
        self, entry: Any
    ) -> tuple[Optional[int], TransactionRecord]:
        if not isinstance(entry, Mapping):
            raise InvalidImport("Invalid transaction entry")
        amount = _finite_float(entry.get("amount"))
        if amount is None:
            raise InvalidImport("Transaction amount invalid")
        raw_type = entry.get("type")
        if raw_type not in (TransactionType.income.value, TransactionType.expense.value):
            raise InvalidImport("Transaction type invalid")
        if not entry.get("date"):
            raise InvalidImport("Transaction date missing")

        raw_description = entry.get("description")
        description = "" if raw_description is None else str(raw_description)
        flag = entry.get("isBalanceCorrection")
        if flag is None:
            flag = is_legacy_correction(description)
        raw_category = entry.get("category")
        category = str(raw_category) if raw_category not in (None, "") else None
        id_number = _finite_float(entry.get("id"))
        original_id = (
            int(id_number)
            if id_number is not None and id_number.is_integer()
            else None
        )

        try:
            record = TransactionRecord(
                id=original_id or 0,
                description=description,
                amount=amount,
                type=TransactionType(raw_type),
                category=category,
                date=entry.get("date"),
                is_balance_correction=bool(flag),
            )
        except ValidationError as exc:
            raise InvalidImport("Transaction date invalid") from exc
        return original_id, record

    def _assign_import_ids(
        self, parsed: list[tuple[Optional[int], TransactionRecord]]
    ) -> list[TransactionRecord]:
        highest = max(
            (original for original, _ in parsed if original is not None), default=0
        )
        next_id = max(highest + 1, int(self._clock() * 1000))
        seen: set[int] = set()
        records: list[TransactionRecord] = []
        for original, record in parsed:
            if original is None or original in seen:
                logger.warning(
                    f"import: reassigning id {original!r} -> {next_id} "
                    f"for '{record.description}'"
                )
                record = record.model_copy(update={"id": next_id})
                next_id += 1
            seen.add(record.id)
            records.append(record)
        return records
