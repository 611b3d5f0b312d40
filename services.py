from __future__ import annotations

import logging
import uuid
from bisect import bisect_right
from datetime import date
from typing import Iterable, Optional, Sequence, Union

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from csv_utils import export_transactions, parse_csv
from database import Database
from errors import ConflictFailure, StorageFailure, ValidationFailure
from models import INCOME_KINDS, Category, Transaction, TransactionKind
from money import decode, encode
from periods import LocalCalendar, Month, month_sequence
from schemas import (
    CategoryOut,
    CSVRow,
    MonthlyCategorySummary,
    MonthlySeriesPoint,
    MonthTotals,
    SaveResult,
    TransactionRow,
)

logger = logging.getLogger(__name__)

UNKNOWN_CATEGORY_NAME = "(Unknown)"

DEFAULT_CATEGORIES: tuple[tuple[str, str], ...] = (
    ("00000000-0000-0000-0000-000000000001", "Food"),
    ("00000000-0000-0000-0000-000000000002", "Subscriptions"),
    ("00000000-0000-0000-0000-000000000003", "Delivery Fees"),
    ("00000000-0000-0000-0000-000000000004", "Online Purchases"),
    ("00000000-0000-0000-0000-000000000005", "Groceries"),
    ("00000000-0000-0000-0000-000000000006", "Misc"),
)


def _as_month(value: Union[Month, date, str]) -> Month:
    if isinstance(value, Month):
        return value
    if isinstance(value, str):
        try:
            return Month.parse(value)
        except ValueError as exc:
            raise ValidationFailure(str(exc)) from exc
    return Month.of(value)


def _month_bounds(calendar: LocalCalendar, month: Month) -> tuple[int, int]:
    try:
        return calendar.month_range(month)
    except (ValueError, OverflowError, OSError) as exc:
        raise ValidationFailure(f"Month {month.label} is out of range") from exc


def _name_key(name: str) -> tuple[str, str]:
    return name.casefold(), name


def _split_totals(total_cents: int, kind: int, bucket: list[int]) -> None:
    # bucket is [income_cents, expense_cents]
    if kind in INCOME_KINDS:
        bucket[0] += total_cents
    else:
        bucket[1] += total_cents


def insert_default_categories(session: Session) -> int:
    """Insert any missing default categories and return how many were added."""
    stmt = (
        sqlite_insert(Category)
        .values([{"id": cid, "name": name} for cid, name in DEFAULT_CATEGORIES])
        .on_conflict_do_nothing()
    )
    return session.execute(stmt).rowcount or 0


class CategoryService:
    def __init__(self, db: Database) -> None:
        self.db = db

    def list_all(self) -> list[CategoryOut]:
        with self.db.session_scope() as session:
            categories = [
                CategoryOut.model_validate(c) for c in session.scalars(select(Category))
            ]
        return sorted(categories, key=lambda c: _name_key(c.name))

    def names_by_id(self) -> dict[str, str]:
        return {c.id: c.name for c in self.list_all()}

    def create(self, name: str) -> CategoryOut:
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValidationFailure("Category name cannot be empty")

        with self.db.session_scope() as session:
            existing = session.scalar(
                select(Category.id).where(
                    func.lower(Category.name) == func.lower(clean_name)
                )
            )
            if existing:
                raise ConflictFailure("That category already exists")

            category = Category(id=str(uuid.uuid4()), name=clean_name)
            session.add(category)
            try:
                session.flush()
            except IntegrityError as exc:
                raise ConflictFailure("That category already exists") from exc
            created = CategoryOut.model_validate(category)

        logger.info(f"category_create: id={created.id} name={created.name}")
        return created

    def ensure_seeded(self) -> int:
        """Insert the default categories when none exist. Returns rows added."""
        with self.db.session_scope() as session:
            count = session.scalar(select(func.count()).select_from(Category)) or 0
            if count > 0:
                return 0
            inserted = insert_default_categories(session)

        logger.info(f"category_seed: inserted={inserted}")
        return inserted


class TransactionService:
    def __init__(self, db: Database, calendar: Optional[LocalCalendar] = None) -> None:
        self.db = db
        self.calendar = calendar or LocalCalendar()

    def _project(self, txn: Transaction) -> TransactionRow:
        try:
            return TransactionRow(
                id=txn.id,
                date=self.calendar.from_storage_instant(txn.date),
                category_id=txn.category_id,
                name=txn.name,
                amount=decode(txn.cost_cents),
                kind=TransactionKind(txn.kind),
            )
        except (TypeError, ValueError, OverflowError, OSError) as exc:
            raise StorageFailure(
                f"Unreadable transaction row {txn.id!r}: {exc}"
            ) from exc

    def list_all(self) -> list[TransactionRow]:
        stmt = select(Transaction).order_by(Transaction.date.desc(), Transaction.name)
        with self.db.session_scope() as session:
            return [self._project(txn) for txn in session.scalars(stmt)]

    def list_for_month(self, month: Union[Month, date, str]) -> list[TransactionRow]:
        start, end = _month_bounds(self.calendar, _as_month(month))
        stmt = (
            select(Transaction)
            .where(Transaction.date >= start, Transaction.date < end)
            .order_by(Transaction.date.desc(), Transaction.name)
        )
        with self.db.session_scope() as session:
            return [self._project(txn) for txn in session.scalars(stmt)]

    def get(self, transaction_id: str) -> Optional[TransactionRow]:
        with self.db.session_scope() as session:
            txn = session.get(Transaction, transaction_id)
            return self._project(txn) if txn else None

    def validate(
        self, row: TransactionRow, valid_category_ids: Optional[set[str]] = None
    ) -> TransactionRow:
        """Return the row as it would be stored, or raise ValidationFailure."""
        name = row.name.strip()
        category_id = row.category_id.strip()
        if not name:
            raise ValidationFailure("Transaction name cannot be empty")
        if not category_id:
            raise ValidationFailure("Transaction category cannot be empty")
        if valid_category_ids is not None and category_id not in valid_category_ids:
            raise ValidationFailure(f"Unknown category: {category_id}")
        try:
            cents = encode(row.amount)
        except ValueError as exc:
            raise ValidationFailure(str(exc)) from exc
        if row.amount <= 0 or cents <= 0:
            raise ValidationFailure("Amount must be greater than zero")
        return TransactionRow(
            id=row.id.strip() or str(uuid.uuid4()),
            date=self.calendar.truncate(row.date),
            category_id=category_id,
            name=name,
            amount=decode(cents),
            kind=row.kind,
        )

    def upsert(self, row: TransactionRow) -> TransactionRow:
        clean = self.validate(row)
        values = {
            "id": clean.id,
            "date": self.calendar.to_storage_instant(clean.date),
            "category_id": clean.category_id,
            "name": clean.name,
            "cost_cents": encode(clean.amount),
            "kind": int(clean.kind),
        }
        stmt = sqlite_insert(Transaction).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[Transaction.id],
            set_={
                "date": stmt.excluded["date"],
                "category_id": stmt.excluded["category_id"],
                "name": stmt.excluded["name"],
                "cost_cents": stmt.excluded["cost_cents"],
                "kind": stmt.excluded["kind"],
            },
        )
        with self.db.session_scope() as session:
            session.execute(stmt)

        logger.info(
            f"transaction_upsert: id={clean.id} month={Month.of(clean.date).label}"
        )
        return clean

    def delete(self, transaction_id: str) -> bool:
        with self.db.session_scope() as session:
            result = session.execute(
                delete(Transaction).where(Transaction.id == transaction_id)
            )
            removed = (result.rowcount or 0) > 0
        if removed:
            logger.info(f"transaction_delete: id={transaction_id}")
        return removed

    def save_many(
        self,
        rows: Iterable[TransactionRow],
        valid_category_ids: Optional[set[str]] = None,
        row_numbers: Optional[Sequence[int]] = None,
    ) -> SaveResult:
        """Upsert each valid row on its own; invalid rows are skipped and counted.

        Errors are labelled with ``row_numbers`` when given, otherwise with the
        row's 1-based position in ``rows``.
        """
        if valid_category_ids is None:
            valid_category_ids = set(CategoryService(self.db).names_by_id())

        result = SaveResult()
        for position, row in enumerate(rows):
            idx = row_numbers[position] if row_numbers is not None else position + 1
            try:
                clean = self.validate(row, valid_category_ids)
                self.upsert(clean)
            except ValidationFailure as exc:
                result.skipped += 1
                result.errors.append(f"Row {idx}: {exc}")
                continue
            except StorageFailure as exc:
                logger.warning(f"transaction_save_failed: row={idx} error={exc}")
                result.skipped += 1
                result.errors.append(f"Row {idx}: {exc}")
                continue
            result.saved += 1

        logger.info(f"transaction_save: saved={result.saved} skipped={result.skipped}")
        return result


class SummaryService:
    def __init__(self, db: Database, calendar: Optional[LocalCalendar] = None) -> None:
        self.db = db
        self.calendar = calendar or LocalCalendar()

    def monthly_summary(
        self,
        month: Union[Month, date, str],
        categories: Optional[Sequence[CategoryOut]] = None,
    ) -> list[MonthlyCategorySummary]:
        if categories is None:
            categories = CategoryService(self.db).list_all()
        start, end = _month_bounds(self.calendar, _as_month(month))

        stmt = (
            select(
                Transaction.category_id,
                Transaction.kind,
                func.coalesce(func.sum(Transaction.cost_cents), 0).label("total"),
            )
            .where(Transaction.date >= start, Transaction.date < end)
            .group_by(Transaction.category_id, Transaction.kind)
        )
        with self.db.session_scope() as session:
            rows = session.execute(stmt).all()

        totals: dict[str, list[int]] = {}
        for row in rows:
            bucket = totals.setdefault(row.category_id, [0, 0])
            _split_totals(int(row.total or 0), row.kind, bucket)
        for category in categories:
            totals.setdefault(category.id, [0, 0])

        names = {c.id: c.name for c in categories}
        summaries = [
            MonthlyCategorySummary(
                category_id=category_id,
                category_name=names.get(category_id, UNKNOWN_CATEGORY_NAME),
                income=decode(income),
                expense=decode(expense),
            )
            for category_id, (income, expense) in totals.items()
        ]
        summaries.sort(key=lambda s: (-s.expense, _name_key(s.category_name)))
        return summaries

    def monthly_series(
        self, end_month: Union[Month, date, str], months_back: int = 12
    ) -> list[MonthlySeriesPoint]:
        try:
            months = month_sequence(_as_month(end_month), months_back)
        except ValueError as exc:
            raise ValidationFailure(str(exc)) from exc

        boundaries = [_month_bounds(self.calendar, m)[0] for m in months]
        start = boundaries[0]
        end = _month_bounds(self.calendar, months[-1])[1]

        stmt = (
            select(
                Transaction.date,
                Transaction.kind,
                func.coalesce(func.sum(Transaction.cost_cents), 0).label("total"),
            )
            .where(Transaction.date >= start, Transaction.date < end)
            .group_by(Transaction.date, Transaction.kind)
        )
        with self.db.session_scope() as session:
            rows = session.execute(stmt).all()

        buckets = [[0, 0] for _ in months]
        for row in rows:
            # A row belongs to the month whose local range holds its instant.
            idx = bisect_right(boundaries, row.date) - 1
            _split_totals(int(row.total or 0), row.kind, buckets[idx])

        return [
            MonthlySeriesPoint(
                label=month.label,
                year=month.year,
                month=month.month,
                income=decode(income),
                expense=decode(expense),
            )
            for month, (income, expense) in zip(months, buckets)
        ]

    def month_totals(self, month: Union[Month, date, str]) -> MonthTotals:
        target = _as_month(month)
        start, end = _month_bounds(self.calendar, target)
        stmt = (
            select(
                Transaction.kind,
                func.coalesce(func.sum(Transaction.cost_cents), 0).label("total"),
            )
            .where(Transaction.date >= start, Transaction.date < end)
            .group_by(Transaction.kind)
        )
        with self.db.session_scope() as session:
            rows = session.execute(stmt).all()

        bucket = [0, 0]
        for row in rows:
            _split_totals(int(row.total or 0), row.kind, bucket)
        return MonthTotals(
            month=target.label, income=decode(bucket[0]), expense=decode(bucket[1])
        )


class CSVService:
    def __init__(self, db: Database, calendar: Optional[LocalCalendar] = None) -> None:
        self.db = db
        self.calendar = calendar or LocalCalendar()

    def _category_lookup(self) -> dict[str, str]:
        return {c.name.casefold(): c.id for c in CategoryService(self.db).list_all()}

    def preview(self, content: str) -> tuple[list[dict[str, object]], list[str]]:
        rows, errors = parse_csv(content)
        lookup = self._category_lookup()
        preview_rows: list[dict[str, object]] = []
        for row in rows:
            category_id = lookup.get(row.category.casefold())
            if category_id is None:
                errors.append(f"Row {row.line}: unknown category {row.category!r}")
            preview_rows.append({"row": row, "category_id": category_id})
        return preview_rows, errors

    def commit(self, content: str) -> SaveResult:
        rows, errors = parse_csv(content)
        lookup = self._category_lookup()
        result = TransactionService(self.db, self.calendar).save_many(
            (self._to_transaction(row, lookup) for row in rows),
            valid_category_ids=set(lookup.values()),
            row_numbers=[row.line for row in rows],
        )
        result.skipped += len(errors)
        result.errors = errors + result.errors
        return result

    @staticmethod
    def _to_transaction(row: CSVRow, lookup: dict[str, str]) -> TransactionRow:
        return TransactionRow(
            id=row.id,
            date=row.date,
            category_id=lookup.get(row.category.casefold(), row.category),
            name=row.name,
            amount=row.amount,
            kind=row.kind,
        )

    def export(self, month: Optional[Union[Month, date, str]] = None) -> str:
        transactions = TransactionService(self.db, self.calendar)
        if month is None:
            rows = transactions.list_all()
        else:
            rows = transactions.list_for_month(month)
        return export_transactions(rows, CategoryService(self.db).names_by_id())
