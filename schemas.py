import datetime as dt
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from models import TransactionKind


class CategoryIn(BaseModel):
    name: str = Field(..., max_length=100)


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    name: str


class TransactionRow(BaseModel):
    """A transaction with its amount in currency units and its local day."""

    id: str = ""
    date: dt.date
    category_id: str = ""
    name: str = ""
    amount: Decimal = Decimal("0")
    kind: TransactionKind = TransactionKind.expense

    @field_validator("kind", mode="before")
    @classmethod
    def _kind_by_name(cls, value: Any) -> Any:
        if isinstance(value, str):
            if value.strip().isdigit():
                return int(value)
            try:
                return TransactionKind[value.strip().lower()]
            except KeyError as exc:
                raise ValueError(f"Unknown transaction kind: {value}") from exc
        return value

    @property
    def is_valid(self) -> bool:
        return (
            bool(self.name.strip())
            and bool(self.category_id.strip())
            and self.amount > 0
        )


class MonthlyCategorySummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    category_id: str
    category_name: str
    income: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")

    @computed_field
    @property
    def net(self) -> Decimal:
        return self.income - self.expense


class MonthlySeriesPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    year: int
    month: int
    income: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")

    @computed_field
    @property
    def net(self) -> Decimal:
        return self.income - self.expense


class MonthTotals(BaseModel):
    model_config = ConfigDict(frozen=True)

    month: str
    income: Decimal = Decimal("0")
    expense: Decimal = Decimal("0")

    @computed_field
    @property
    def net(self) -> Decimal:
        return self.income - self.expense


class SaveResult(BaseModel):
    saved: int = 0
    skipped: int = 0
    errors: list[str] = Field(default_factory=list)


class CSVRow(BaseModel):
    line: int = 0
    id: str = ""
    date: dt.date
    kind: TransactionKind
    amount: Decimal = Field(..., ge=0)
    category: str
    name: str
