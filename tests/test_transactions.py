from datetime import date
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest

from database import Database, ensure_schema
from errors import StorageFailure, ValidationFailure
from models import Transaction, TransactionKind
from periods import LocalCalendar, Month
from schemas import TransactionRow
from services import CategoryService, TransactionService

BERLIN = LocalCalendar(ZoneInfo("Europe/Berlin"))
FOOD = "00000000-0000-0000-0000-000000000001"
GROCERIES = "00000000-0000-0000-0000-000000000005"


def make_service(tmp_path) -> TransactionService:
    db = Database(f"sqlite:///{tmp_path / 'ledger.db'}")
    ensure_schema(db)
    CategoryService(db).ensure_seeded()
    return TransactionService(db, BERLIN)


def row(**overrides) -> TransactionRow:
    data = {
        "id": "t-1",
        "date": date(2024, 3, 15),
        "category_id": FOOD,
        "name": "Lunch",
        "amount": Decimal("12.50"),
        "kind": TransactionKind.expense,
    }
    data.update(overrides)
    return TransactionRow(**data)


def test_upsert_inserts_and_reads_back_decoded(tmp_path) -> None:
    service = make_service(tmp_path)
    service.upsert(row(name="  Lunch  "))

    stored = service.list_all()
    assert stored == [row()]
    assert stored[0].amount == Decimal("12.50")
    assert stored[0].date == date(2024, 3, 15)


def test_amount_is_stored_as_integer_cents(tmp_path) -> None:
    service = make_service(tmp_path)
    service.upsert(row(amount=Decimal("19.99")))

    with service.db.session_scope() as session:
        txn = session.get(Transaction, "t-1")
        assert txn.cost_cents == 1999
        assert txn.date == BERLIN.to_storage_instant(date(2024, 3, 15))
        assert txn.kind == 0


def test_upsert_generates_id_when_blank(tmp_path) -> None:
    service = make_service(tmp_path)
    saved = service.upsert(row(id="  "))

    assert saved.id.strip()
    assert service.get(saved.id) == saved


def test_upsert_is_idempotent(tmp_path) -> None:
    service = make_service(tmp_path)
    service.upsert(row())
    after_first = service.list_all()
    service.upsert(row())

    assert service.list_all() == after_first
    assert len(after_first) == 1


def test_upsert_replaces_every_mutable_field(tmp_path) -> None:
    service = make_service(tmp_path)
    service.upsert(row())
    service.upsert(
        row(
            date=date(2024, 4, 2),
            category_id=GROCERIES,
            name="Market",
            amount=Decimal("40"),
            kind=TransactionKind.refund,
        )
    )

    assert service.list_all() == [
        TransactionRow(
            id="t-1",
            date=date(2024, 4, 2),
            category_id=GROCERIES,
            name="Market",
            amount=Decimal("40.00"),
            kind=TransactionKind.refund,
        )
    ]


def test_delete_is_idempotent(tmp_path) -> None:
    service = make_service(tmp_path)
    service.upsert(row())
    service.upsert(row(id="t-2", name="Dinner"))

    assert service.delete("t-1") is True
    remaining = service.list_all()
    assert service.delete("t-1") is False
    assert service.delete("never-existed") is False
    assert service.list_all() == remaining
    assert [r.id for r in remaining] == ["t-2"]


def test_list_orders_by_date_desc_then_name(tmp_path) -> None:
    service = make_service(tmp_path)
    service.upsert(row(id="a", name="Coffee", date=date(2024, 3, 2)))
    service.upsert(row(id="b", name="Bagel", date=date(2024, 3, 2)))
    service.upsert(row(id="c", name="Dinner", date=date(2024, 3, 20)))

    assert [r.name for r in service.list_all()] == ["Dinner", "Bagel", "Coffee"]


def test_list_for_month_uses_local_month_boundaries(tmp_path) -> None:
    service = make_service(tmp_path)
    service.upsert(row(id="feb", date=date(2024, 2, 29)))
    service.upsert(row(id="first", date=date(2024, 3, 1)))
    service.upsert(row(id="last", date=date(2024, 3, 31)))
    service.upsert(row(id="apr", date=date(2024, 4, 1)))

    march = service.list_for_month(Month(2024, 3))
    assert [r.id for r in march] == ["last", "first"]
    assert [r.id for r in service.list_for_month("2024-04")] == ["apr"]
    assert [r.id for r in service.list_for_month(date(2024, 2, 10))] == ["feb"]


@pytest.mark.parametrize(
    "overrides",
    [
        {"name": "   "},
        {"category_id": ""},
        {"amount": Decimal("0")},
        {"amount": Decimal("-5")},
        {"amount": Decimal("0.001")},
    ],
)
def test_invalid_rows_are_rejected_before_writing(tmp_path, overrides) -> None:
    service = make_service(tmp_path)
    with pytest.raises(ValidationFailure):
        service.upsert(row(**overrides))
    assert service.list_all() == []


def test_unknown_category_is_a_storage_failure(tmp_path) -> None:
    service = make_service(tmp_path)
    with pytest.raises(StorageFailure):
        service.upsert(row(category_id="missing"))
    assert service.list_all() == []


def test_unreadable_rows_raise_storage_failure(tmp_path) -> None:
    service = make_service(tmp_path)
    with service.db.session_scope() as session:
        session.add(
            Transaction(
                id="bad",
                date=BERLIN.to_storage_instant(date(2024, 3, 1)),
                category_id=FOOD,
                name="Broken",
                cost_cents=100,
                kind=9,
            )
        )

    with pytest.raises(StorageFailure):
        service.list_all()


def test_save_many_skips_invalid_rows(tmp_path) -> None:
    service = make_service(tmp_path)
    result = service.save_many(
        [
            row(id="ok"),
            row(id="no-name", name=""),
            row(id="no-cost", amount=Decimal("0")),
            row(id="bad-category", category_id="missing"),
            row(id="ok-2", name="Dinner"),
        ]
    )

    assert result.saved == 2
    assert result.skipped == 3
    assert len(result.errors) == 3
    assert result.errors[0].startswith("Row 2:")
    assert sorted(r.id for r in service.list_all()) == ["ok", "ok-2"]


def test_get_returns_none_for_missing_id(tmp_path) -> None:
    service = make_service(tmp_path)
    assert service.get("nope") is None
