import json
import logging
import math
from typing import Optional

from sqlalchemy.orm import Session

from models import StoredValue
from schemas import TransactionRecord

logger = logging.getLogger(__name__)

TRANSACTIONS_KEY = "transactions"
BALANCE_OFFSET_KEY = "balanceOffset"


class LocalStore:
    """The two keys the ledger lives in, kept in the ``kv_store`` table."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, key: str) -> Optional[str]:
        row = self.session.get(StoredValue, key)
        return row.value if row else None

    def set(self, key: str, value: str) -> None:
        row = self.session.get(StoredValue, key)
        if row is None:
            self.session.add(StoredValue(key=key, value=value))
        else:
            row.value = value

    def load_transactions(self) -> list[TransactionRecord]:
        raw = self.get(TRANSACTIONS_KEY)
        if not raw:
            return []
        try:
            items = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ValueError("Stored transactions are not valid JSON") from exc
        if not isinstance(items, list):
            raise ValueError("Stored transactions must be a JSON array")
        return [TransactionRecord.model_validate(item) for item in items]

    def load_balance_offset(self) -> float:
        raw = self.get(BALANCE_OFFSET_KEY)
        try:
            value = float(raw) if raw else 0.0
        except ValueError:
            logger.warning(f"store: unreadable balanceOffset {raw!r}, using 0")
            return 0.0
        return value if math.isfinite(value) else 0.0

    def save(self, transactions: list[TransactionRecord], balance_offset: float) -> None:
        payload = json.dumps([t.to_wire() for t in transactions])
        self.set(TRANSACTIONS_KEY, payload)
        self.set(BALANCE_OFFSET_KEY, repr(float(balance_offset)))
        self.session.flush()
