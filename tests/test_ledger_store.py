"""Ledger store: append-only semantics, database constraints and filtered reads."""

from datetime import timedelta

import pytest
from sqlalchemy import delete, text, update
from sqlalchemy.exc import DBAPIError, IntegrityError

from inventory_ledger.errors import ValidationError
from inventory_ledger.models.inventory_transaction import (
    InventoryTransaction,
    LedgerImmutableError,
    TransactionType,
    utcnow,
)
from inventory_ledger.services import inventory_service, ledger_store
from inventory_ledger.services.ledger_store import LedgerFilter


@pytest.fixture
def first_entry(db, seed):
    entries, _ = ledger_store.query(db, LedgerFilter(product_id=seed.product_id))
    return entries[0]


def test_existing_entry_cannot_be_updated(db, first_entry):
    first_entry.reason = "rewritten history"
    with pytest.raises(LedgerImmutableError):
        db.commit()
    db.rollback()

    entries, _ = ledger_store.query(db, LedgerFilter(product_id=first_entry.product_id))
    assert entries[0].reason != "rewritten history"


def test_existing_entry_cannot_be_deleted(db, first_entry):
    db.delete(first_entry)
    with pytest.raises(LedgerImmutableError):
        db.commit()
    db.rollback()

    _, total = ledger_store.query(db, LedgerFilter(product_id=first_entry.product_id))
    assert total == 1


def test_append_rejects_inconsistent_arithmetic(db, seed):
    with pytest.raises(ValidationError):
        ledger_store.append(
            db,
            product_id=seed.product_id,
            business_id=seed.business_id,
            user_id=seed.owner_id,
            transaction_type=TransactionType.USAGE,
            old_quantity=10,
            new_quantity=12,
            quantity_changed=2,
        )


def test_append_rejects_non_positive_delta(db, seed):
    with pytest.raises(ValidationError):
        ledger_store.append(
            db,
            product_id=seed.product_id,
            business_id=seed.business_id,
            user_id=seed.owner_id,
            transaction_type=TransactionType.TOP_UP,
            old_quantity=10,
            new_quantity=10,
            quantity_changed=0,
        )


def test_database_rejects_negative_stock(db, seed):
    with pytest.raises(IntegrityError):
        db.execute(text("UPDATE products SET quantity = -1 WHERE id = :id"), {"id": seed.product_id})
        db.commit()
    db.rollback()


@pytest.mark.parametrize(
    "statement",
    [
        update(InventoryTransaction).values(reason="rewritten history"),
        delete(InventoryTransaction),
    ],
    ids=["update", "delete"],
)
def test_core_statements_cannot_rewrite_the_ledger(db, seed, statement):
    with pytest.raises(DBAPIError, match="append-only"):
        db.execute(statement.where(InventoryTransaction.product_id == seed.product_id))
    db.rollback()

    entries, total = ledger_store.query(db, LedgerFilter(product_id=seed.product_id))
    assert total == 1
    assert entries[0].reason == "Initial stock"


def test_database_rejects_sign_encoded_delta(db, seed):
    with pytest.raises(IntegrityError):
        db.execute(
            text(
                "INSERT INTO inventory_transactions (product_id, business_id, user_id, transaction_type,"
                " old_quantity, new_quantity, quantity_changed, created_at)"
                " VALUES (:p, :b, :u, 'USAGE', 10, 7, -3, :now)"
            ),
            {"p": seed.product_id, "b": seed.business_id, "u": seed.owner_id, "now": utcnow()},
        )
        db.commit()
    db.rollback()


def test_query_orders_newest_first_and_counts_all(db, seed):
    for amount in (1, 2, 3):
        inventory_service.increment(db, seed.product_id, amount, seed.owner_id)

    entries, total = ledger_store.query(db, LedgerFilter(product_id=seed.product_id), limit=2)
    assert total == 4
    assert [e.quantity_changed for e in entries] == [3, 2]

    oldest_first, _ = ledger_store.query(db, LedgerFilter(product_id=seed.product_id), order="asc")
    assert [e.quantity_changed for e in oldest_first] == [50, 1, 2, 3]
    assert [e.id for e in oldest_first] == sorted(e.id for e in oldest_first)


def test_query_filters_by_type_actor_and_time(db, seed, other_user_id):
    inventory_service.decrement(db, seed.product_id, 4, seed.owner_id)
    inventory_service.increment(db, seed.product_id, 6, other_user_id)

    usage, total = ledger_store.query(
        db, LedgerFilter(product_id=seed.product_id, transaction_type=TransactionType.USAGE)
    )
    assert total == 1
    assert usage[0].quantity_changed == 4

    by_other, _ = ledger_store.query(db, LedgerFilter(business_id=seed.business_id, user_id=other_user_id))
    assert [e.quantity_changed for e in by_other] == [6]

    future = utcnow() + timedelta(days=1)
    _, none_total = ledger_store.query(db, LedgerFilter(product_id=seed.product_id, start_date=future))
    assert none_total == 0
    _, all_total = ledger_store.query(db, LedgerFilter(product_id=seed.product_id, end_date=future))
    assert all_total == 3


def test_query_with_empty_product_scope_returns_nothing(db, seed):
    entries, total = ledger_store.query(db, LedgerFilter(product_ids=()))
    assert entries == [] and total == 0


def test_query_rejects_unknown_order(db, seed):
    with pytest.raises(ValidationError):
        ledger_store.query(db, LedgerFilter(), order="sideways")
