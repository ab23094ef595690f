"""Stock mutator: the only code path that changes ``Product.quantity``.

Each increment/decrement is one unit of work: lock and read the product,
check the candidate quantity, compare-and-swap the stock record and append the
ledger entry, then commit. A lost compare-and-swap or a write conflict reported
by the database rolls everything back and the whole unit is retried with fresh
state, a bounded number of times.
"""

import logging
import time
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from inventory_ledger.config import settings
from inventory_ledger.database import begin_write
from inventory_ledger.errors import ConcurrencyConflict, InsufficientStock, NotFound, ValidationError
from inventory_ledger.models.inventory_transaction import TransactionType, utcnow
from inventory_ledger.models.product import MAX_QUANTITY, Product
from inventory_ledger.schemas.inventory import TransactionSummary
from inventory_ledger.services import ledger_store

logger = logging.getLogger(__name__)

DEFAULT_REASONS = {
    TransactionType.TOP_UP: "Stock replenishment",
    TransactionType.USAGE: "Stock usage",
}

# SQLSTATE serialization_failure / deadlock_detected
_PG_CONFLICT_CODES = {"40001", "40P01"}


class _StaleRead(Exception):
    """The stock record changed between the locked read and the conditional update."""


def increment(
    db: Session,
    product_id: str,
    quantity: int,
    actor_id: str,
    reason: str | None = None,
    reference_id: UUID | str | None = None,
) -> TransactionSummary:
    return _apply_change(db, TransactionType.TOP_UP, product_id, quantity, actor_id, reason, reference_id)


def decrement(
    db: Session,
    product_id: str,
    quantity: int,
    actor_id: str,
    reason: str | None = None,
    reference_id: UUID | str | None = None,
) -> TransactionSummary:
    return _apply_change(db, TransactionType.USAGE, product_id, quantity, actor_id, reason, reference_id)


def _validate_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("Quantity must be an integer")
    if quantity <= 0:
        raise ValidationError("Quantity must be greater than 0")
    if quantity > MAX_QUANTITY:
        raise ValidationError(f"Quantity must not exceed {MAX_QUANTITY}")
    return quantity


def _normalize_reference(reference_id) -> str | None:
    if reference_id is None or reference_id == "":
        return None
    if isinstance(reference_id, UUID):
        return str(reference_id)
    try:
        return str(UUID(str(reference_id)))
    except ValueError:
        raise ValidationError("referenceId must be a valid UUID") from None


def _lock_product(db: Session, product_id: str) -> Product:
    stmt = (
        select(Product)
        .where(Product.id == product_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    product = db.scalars(stmt).first()
    if not product:
        raise NotFound("Product not found")
    if not product.category or not product.category.is_active:
        raise NotFound("Cannot modify product - category has been deleted")
    return product


def _swap_quantity(db: Session, product_id: str, expected: int, new_quantity: int) -> bool:
    """Write ``new_quantity`` only if the stored quantity is still ``expected``."""
    result = db.execute(
        update(Product)
        .where(Product.id == product_id, Product.quantity == expected)
        .values(quantity=new_quantity, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _is_write_conflict(exc: OperationalError) -> bool:
    orig = exc.orig
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code in _PG_CONFLICT_CODES:
        return True
    return "database is locked" in str(orig).lower()


def _apply_change(
    db: Session,
    transaction_type: TransactionType,
    product_id: str,
    quantity,
    actor_id: str,
    reason: str | None,
    reference_id,
) -> TransactionSummary:
    if not product_id:
        raise ValidationError("Product ID is required")
    if not actor_id:
        raise ValidationError("User ID is required")
    quantity = _validate_quantity(quantity)
    reference = _normalize_reference(reference_id)
    reason = (reason or "").strip() or DEFAULT_REASONS[transaction_type]

    if db.in_transaction():
        # close the caller's read transaction; the change needs a fresh write transaction
        db.commit()

    attempts = settings.MUTATION_MAX_ATTEMPTS
    for attempt in range(1, attempts + 1):
        try:
            begin_write(db)
            product = _lock_product(db, product_id)
            old_qty = product.quantity
            if transaction_type == TransactionType.TOP_UP:
                new_qty = old_qty + quantity
                if new_qty > MAX_QUANTITY:
                    raise ValidationError(
                        f"Stock would exceed {MAX_QUANTITY}. Current stock: {old_qty}, requested: {quantity}"
                    )
            else:
                new_qty = old_qty - quantity
                if new_qty < 0:
                    raise InsufficientStock(product_id, available=old_qty, requested=quantity)

            if not _swap_quantity(db, product.id, old_qty, new_qty):
                raise _StaleRead()

            entry = ledger_store.append(
                db,
                product_id=product.id,
                business_id=product.business_id,
                user_id=actor_id,
                transaction_type=transaction_type,
                old_quantity=old_qty,
                new_quantity=new_qty,
                quantity_changed=quantity,
                reason=reason,
                reference_id=reference,
            )
            summary = TransactionSummary(
                product_id=product.id,
                product_name=product.name,
                old_quantity=old_qty,
                new_quantity=new_qty,
                quantity_changed=quantity,
                transaction_type=transaction_type,
                transaction_id=entry.id,
            )
            db.commit()
        except _StaleRead:
            db.rollback()
            logger.warning(
                "Stock of product %s changed under us (attempt %d/%d)", product_id, attempt, attempts
            )
        except OperationalError as exc:
            db.rollback()
            if not _is_write_conflict(exc):
                raise
            logger.warning(
                "Write conflict on product %s (attempt %d/%d): %s", product_id, attempt, attempts, exc.orig
            )
        except Exception:
            db.rollback()
            raise
        else:
            logger.info(
                "%s product=%s %d->%d (%d) actor=%s txn=%s",
                transaction_type.value, product_id, old_qty, new_qty, quantity, actor_id, summary.transaction_id,
            )
            return summary

        if attempt < attempts:
            time.sleep(settings.MUTATION_RETRY_BACKOFF_SECONDS * attempt)

    logger.error("Giving up on %s for product %s after %d attempts", transaction_type.value, product_id, attempts)
    raise ConcurrencyConflict(product_id, attempts)
