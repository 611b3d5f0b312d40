from enum import IntEnum

from sqlalchemy import ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class TransactionKind(IntEnum):
    # Stored as integers; never renumber without a migration.
    expense = 0
    income = 1
    refund = 2

    @property
    def is_income(self) -> bool:
        return self in (TransactionKind.income, TransactionKind.refund)


INCOME_KINDS = (TransactionKind.income, TransactionKind.refund)


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="category"
    )


class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    # Unix seconds of local midnight of the transaction day.
    date: Mapped[int] = mapped_column(Integer, nullable=False)
    category_id: Mapped[str] = mapped_column(
        ForeignKey("categories.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    cost_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    kind: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )

    category: Mapped["Category"] = relationship(
        "Category", back_populates="transactions"
    )

    __table_args__ = (
        Index("ix_transactions_date", "date"),
        Index("ix_transactions_category_id", "category_id"),
    )


# Category names are unique regardless of case.
category_name_index = Index(
    "uq_categories_name_lower", func.lower(Category.name), unique=True
)
