from sqlalchemy.orm import Session

from inventory_ledger.models.inventory_transaction import TransactionType
from inventory_ledger.services import ledger_store, product_service


def reconcile_product(db: Session, product_id: str) -> dict:
    """Replay a product's ledger oldest first and compare it with the stock record."""
    product = product_service.find_by_id(db, product_id)
    entries, _ = ledger_store.query(db, ledger_store.LedgerFilter(product_id=product_id), order="asc")

    running = 0
    total_top_up = 0
    total_usage = 0
    breaks = []

    for entry in entries:
        if entry.old_quantity != running:
            breaks.append(_break(entry, running, "old quantity does not continue the previous entry"))

        if entry.transaction_type == TransactionType.TOP_UP:
            expected_new = entry.old_quantity + entry.quantity_changed
            total_top_up += entry.quantity_changed
        else:
            expected_new = entry.old_quantity - entry.quantity_changed
            total_usage += entry.quantity_changed
        if entry.new_quantity != expected_new:
            breaks.append(_break(entry, running, "new quantity does not match the change"))

        running = entry.new_quantity

    return {
        "product_id": product.id,
        "current_quantity": product.quantity,
        "replayed_quantity": running,
        "entry_count": len(entries),
        "total_top_up": total_top_up,
        "total_usage": total_usage,
        "consistent": not breaks and running == product.quantity,
        "breaks": breaks,
    }


def _break(entry, expected_old: int, problem: str) -> dict:
    return {
        "transaction_id": entry.id,
        "expected_old_quantity": expected_old,
        "old_quantity": entry.old_quantity,
        "new_quantity": entry.new_quantity,
        "problem": problem,
    }
