import uuid

import pytest
from sqlalchemy import text

from inventory_ledger.errors import NotFound
from inventory_ledger.services import inventory_service, report_service


def test_reconciliation_matches_stock_after_changes(db, seed):
    inventory_service.increment(db, seed.product_id, 10, seed.owner_id)
    inventory_service.decrement(db, seed.product_id, 35, seed.owner_id)

    report = report_service.reconcile_product(db, seed.product_id)
    assert report["consistent"] is True
    assert report["breaks"] == []
    assert report["current_quantity"] == report["replayed_quantity"] == 25
    assert report["entry_count"] == 3
    assert report["total_top_up"] == 60
    assert report["total_usage"] == 35


def test_reconciliation_of_product_without_entries(db, make_product):
    product_id = make_product(quantity=0)
    report = report_service.reconcile_product(db, product_id)
    assert report["consistent"] is True
    assert report["entry_count"] == 0
    assert report["replayed_quantity"] == 0


def test_reconciliation_detects_stock_changed_outside_the_mutator(db, seed):
    db.execute(text("UPDATE products SET quantity = 70 WHERE id = :id"), {"id": seed.product_id})
    db.commit()

    report = report_service.reconcile_product(db, seed.product_id)
    assert report["consistent"] is False
    assert report["current_quantity"] == 70
    assert report["replayed_quantity"] == 50
    assert report["breaks"] == []


def test_reconciliation_reports_broken_chain(db, seed):
    inventory_service.increment(db, seed.product_id, 5, seed.owner_id)
    # a row whose old quantity does not continue the previous entry
    db.execute(
        text(
            "INSERT INTO inventory_transactions (product_id, business_id, user_id, transaction_type,"
            " old_quantity, new_quantity, quantity_changed, created_at)"
            " VALUES (:p, :b, :u, 'TOP_UP', 40, 45, 5, '2999-01-01 00:00:00.000000')"
        ),
        {"p": seed.product_id, "b": seed.business_id, "u": seed.owner_id},
    )
    db.commit()

    report = report_service.reconcile_product(db, seed.product_id)
    assert report["consistent"] is False
    assert len(report["breaks"]) == 1
    broken = report["breaks"][0]
    assert broken["expected_old_quantity"] == 55
    assert broken["old_quantity"] == 40


def test_reconciliation_of_unknown_product(db, seed):
    with pytest.raises(NotFound):
        report_service.reconcile_product(db, str(uuid.uuid4()))
