from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from models import TransactionType

EXPORT_VERSION = 1


class TransactionRecord(BaseModel):
    """A transaction as kept in the ledger and written to the store or a backup."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    description: str = ""
    amount: float
    type: TransactionType
    category: Optional[str] = None
    date: datetime
    is_balance_correction: bool = Field(default=False, alias="isBalanceCorrection")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ExportBundle(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    export_version: int = Field(default=EXPORT_VERSION, alias="exportVersion")
    exported_at: datetime = Field(alias="exportedAt")
    transactions: list[TransactionRecord] = Field(default_factory=list)
    balance_offset: float = Field(default=0.0, alias="balanceOffset")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class BalanceOut(BaseModel):
    balance: float
    total_income: float
    total_expenses: float
    balance_display: str
    total_income_display: str
    total_expenses_display: str


class CategoryHistoryOut(BaseModel):
    category: str
    period_start: str
    period_end: str
    label: str
    has_previous: bool
    has_next: bool
    entries: list[dict[str, Any]]
    total: float
    total_percentage: float
    initial_balance: float
    summary: str
