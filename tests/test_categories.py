import pytest
from sqlalchemy.exc import IntegrityError

from database import Database, ensure_schema
from errors import ConflictFailure, StorageFailure, ValidationFailure
from models import Category
from services import DEFAULT_CATEGORIES, CategoryService, insert_default_categories


def make_database(tmp_path) -> Database:
    db = Database(f"sqlite:///{tmp_path / 'ledger.db'}")
    ensure_schema(db)
    return db


def test_create_trims_and_lists_by_name(tmp_path) -> None:
    categories = CategoryService(make_database(tmp_path))
    created = categories.create("  Travel ")
    categories.create("Books")

    assert created.name == "Travel"
    assert created.id
    assert [c.name for c in categories.list_all()] == ["Books", "Travel"]


def test_create_rejects_empty_name(tmp_path) -> None:
    categories = CategoryService(make_database(tmp_path))
    for name in ["", "   ", None]:
        with pytest.raises(ValidationFailure):
            categories.create(name)
    assert categories.list_all() == []


def test_create_rejects_duplicate_name_case_insensitive(tmp_path) -> None:
    categories = CategoryService(make_database(tmp_path))
    categories.create("Food")

    with pytest.raises(ConflictFailure):
        categories.create("food")
    with pytest.raises(ConflictFailure):
        categories.create(" FOOD ")
    assert [c.name for c in categories.list_all()] == ["Food"]


def test_case_insensitive_uniqueness_is_enforced_by_the_database(tmp_path) -> None:
    db = make_database(tmp_path)
    CategoryService(db).create("Food")

    with pytest.raises(StorageFailure) as info:
        with db.session_scope() as session:
            session.add(Category(id="other", name="FOOD"))
    assert isinstance(info.value.__cause__, IntegrityError)


def test_ensure_seeded_inserts_defaults_once(tmp_path) -> None:
    categories = CategoryService(make_database(tmp_path))

    assert categories.ensure_seeded() == len(DEFAULT_CATEGORIES)
    assert categories.ensure_seeded() == 0

    seeded = categories.list_all()
    assert [c.name for c in seeded] == [
        "Delivery Fees",
        "Food",
        "Groceries",
        "Misc",
        "Online Purchases",
        "Subscriptions",
    ]
    food = next(c for c in seeded if c.name == "Food")
    assert food.id == "00000000-0000-0000-0000-000000000001"


def test_ensure_seeded_is_noop_when_categories_exist(tmp_path) -> None:
    categories = CategoryService(make_database(tmp_path))
    categories.create("Rent")

    assert categories.ensure_seeded() == 0
    assert [c.name for c in categories.list_all()] == ["Rent"]


def test_seeded_names_still_conflict(tmp_path) -> None:
    categories = CategoryService(make_database(tmp_path))
    categories.ensure_seeded()

    with pytest.raises(ConflictFailure):
        categories.create("groceries")


def test_inserting_defaults_counts_only_new_rows(tmp_path) -> None:
    db = make_database(tmp_path)
    CategoryService(db).create("Rent")

    with db.session_scope() as session:
        assert insert_default_categories(session) == len(DEFAULT_CATEGORIES)
    with db.session_scope() as session:
        assert insert_default_categories(session) == 0
    assert len(CategoryService(db).list_all()) == len(DEFAULT_CATEGORIES) + 1


def test_list_all_orders_names_case_insensitively(tmp_path) -> None:
    categories = CategoryService(make_database(tmp_path))
    for name in ["Zoo", "apple", "Banana"]:
        categories.create(name)

    assert [c.name for c in categories.list_all()] == ["apple", "Banana", "Zoo"]
