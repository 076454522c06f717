from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Optional, Union

from sqlalchemy.orm import Session

from ledger import (
    BalanceSummary,
    CategoryPeriodReport,
    InsufficientFunds,
    InvalidImport,
    Ledger,
)
from models import TransactionType
from periods import PeriodNavigation, local_today, period_navigation
from schemas import ExportBundle, TransactionRecord
from store import LocalStore

logger = logging.getLogger(__name__)


class LedgerService:
    """Loads the ledger from the local store and writes it back after every change."""

    def __init__(self, session: Session, ledger: Optional[Ledger] = None) -> None:
        self.session = session
        self.store = LocalStore(session)
        self.ledger = ledger or Ledger(
            self.store.load_transactions(), self.store.load_balance_offset()
        )

    def _persist(self) -> None:
        self.store.save(self.ledger.transactions, self.ledger.balance_offset)
        self.session.commit()

    def compute_balance(self) -> BalanceSummary:
        return self.ledger.compute_balance()

    def list_transactions(self) -> list[TransactionRecord]:
        return self.ledger.visible_transactions()

    def record_transaction(
        self,
        description: str,
        amount: Any,
        type: Union[TransactionType, str],
        category: Optional[str] = None,
        date: Union[None, str, datetime] = None,
    ) -> TransactionRecord:
        try:
            txn = self.ledger.record_transaction(
                description, amount, type, category, date
            )
        except InsufficientFunds as exc:
            logger.warning(
                f"record_rejected: amount={amount} available={exc.available:.2f}"
            )
            raise
        self._persist()
        logger.info(
            f"transaction_recorded: id={txn.id} type={txn.type.value} "
            f"amount={txn.amount:.2f} category={txn.category}"
        )
        return txn

    def delete_transaction(self, transaction_id: int) -> None:
        self.ledger.delete_transaction(transaction_id)
        self._persist()
        logger.info(f"transaction_deleted: id={transaction_id}")

    def edit_transaction(
        self, transaction_id: int, new_description: str, new_amount: Any
    ) -> TransactionRecord:
        try:
            txn = self.ledger.edit_transaction(
                transaction_id, new_description, new_amount
            )
        except InsufficientFunds as exc:
            logger.warning(
                f"edit_rejected: id={transaction_id} amount={new_amount} "
                f"available={exc.available:.2f}"
            )
            raise
        self._persist()
        logger.info(f"transaction_edited: id={txn.id} amount={txn.amount:.2f}")
        return txn

    def set_balance(self, asserted: Any) -> BalanceSummary:
        previous = self.ledger.balance_offset
        if self.ledger.set_balance(asserted):
            self._persist()
            logger.info(
                f"balance_corrected: offset {previous:.2f} -> "
                f"{self.ledger.balance_offset:.2f}"
            )
        return self.ledger.compute_balance()

    def category_history(
        self, category: str, start: date, *, today: Optional[date] = None
    ) -> tuple[CategoryPeriodReport, PeriodNavigation]:
        report = self.ledger.category_period_report(category, start)
        navigation = period_navigation(
            report.period.start,
            today=today or local_today(),
            earliest=self.ledger.earliest_date(),
        )
        return report, navigation

    def export_bundle(self) -> ExportBundle:
        return self.ledger.export_bundle()

    def import_bundle(self, bundle: Any) -> int:
        try:
            self.ledger.import_bundle(bundle)
        except InvalidImport as exc:
            logger.warning(f"import_rejected: {exc}")
            raise
        self._persist()
        count = len(self.ledger.transactions)
        logger.info(
            f"import_committed: transactions={count} "
            f"balance_offset={self.ledger.balance_offset:.2f}"
        )
        return count
