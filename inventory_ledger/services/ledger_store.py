"""Append-only persistence for inventory transactions.

The ledger knows nothing about products, categories or users beyond their ids.
Entries are never updated or deleted; corrections are recorded as new
compensating entries.
"""

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from inventory_ledger.errors import ValidationError
from inventory_ledger.models.inventory_transaction import InventoryTransaction, TransactionType


@dataclass(frozen=True)
class LedgerFilter:
    product_id: str | None = None
    product_ids: tuple[str, ...] | None = None
    business_id: str | None = None
    user_id: str | None = None
    transaction_type: TransactionType | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None


def append(
    db: Session,
    *,
    product_id: str,
    business_id: str,
    user_id: str,
    transaction_type: TransactionType,
    old_quantity: int,
    new_quantity: int,
    quantity_changed: int,
    reason: str | None = None,
    reference_id: str | None = None,
) -> InventoryTransaction:
    """Insert one entry in the caller's transaction and flush it to get id and timestamp.

    The caller owns the commit, so the entry lands together with the stock
    update or not at all.
    """
    if quantity_changed <= 0:
        raise ValidationError("quantity_changed must be greater than 0")
    if transaction_type == TransactionType.TOP_UP:
        expected = old_quantity + quantity_changed
    else:
        expected = old_quantity - quantity_changed
    if new_quantity != expected or new_quantity < 0:
        raise ValidationError(
            f"Ledger entry {transaction_type.value} {old_quantity}->{new_quantity} "
            f"does not match quantity_changed={quantity_changed}"
        )

    entry = InventoryTransaction(
        product_id=product_id,
        business_id=business_id,
        user_id=user_id,
        transaction_type=transaction_type,
        old_quantity=old_quantity,
        new_quantity=new_quantity,
        quantity_changed=quantity_changed,
        reason=reason,
        reference_id=reference_id,
    )
    db.add(entry)
    db.flush()
    return entry


def _conditions(ledger_filter: LedgerFilter) -> list:
    conds = []
    if ledger_filter.product_id:
        conds.append(InventoryTransaction.product_id == ledger_filter.product_id)
    if ledger_filter.product_ids is not None:
        conds.append(InventoryTransaction.product_id.in_(ledger_filter.product_ids))
    if ledger_filter.business_id:
        conds.append(InventoryTransaction.business_id == ledger_filter.business_id)
    if ledger_filter.user_id:
        conds.append(InventoryTransaction.user_id == ledger_filter.user_id)
    if ledger_filter.transaction_type:
        conds.append(InventoryTransaction.transaction_type == ledger_filter.transaction_type)
    if ledger_filter.start_date:
        conds.append(InventoryTransaction.created_at >= ledger_filter.start_date)
    if ledger_filter.end_date:
        conds.append(InventoryTransaction.created_at <= ledger_filter.end_date)
    return conds


def query(
    db: Session,
    ledger_filter: LedgerFilter,
    order: str = "desc",
    offset: int = 0,
    limit: int | None = None,
) -> tuple[list[InventoryTransaction], int]:
    """Return ``(entries, total)`` where total counts every entry matching the filter."""
    if order not in ("asc", "desc"):
        raise ValidationError(f"Unknown ledger order '{order}'")
    if ledger_filter.product_ids is not None and not ledger_filter.product_ids:
        return [], 0

    conds = _conditions(ledger_filter)
    total = db.scalar(select(func.count(InventoryTransaction.id)).where(*conds)) or 0

    if order == "desc":
        ordering = (InventoryTransaction.created_at.desc(), InventoryTransaction.id.desc())
    else:
        ordering = (InventoryTransaction.created_at.asc(), InventoryTransaction.id.asc())

    stmt = select(InventoryTransaction).where(*conds).order_by(*ordering).offset(offset)
    if limit is not None:
        stmt = stmt.limit(limit)
    return list(db.scalars(stmt).all()), total
