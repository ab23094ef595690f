from datetime import datetime, timezone
from enum import Enum as PyEnum

from sqlalchemy import DDL, CheckConstraint, DateTime, Enum, ForeignKey, Index, Integer, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from inventory_ledger.database import Base


class TransactionType(str, PyEnum):
    TOP_UP = "TOP_UP"
    USAGE = "USAGE"


class LedgerImmutableError(RuntimeError):
    """Raised when something tries to flush a change to an existing ledger row."""


def utcnow() -> datetime:
    # Naive UTC with microseconds: SQLite drops tzinfo and server_default now() is second-granular
    return datetime.now(timezone.utc).replace(tzinfo=None)


class InventoryTransaction(Base):
    """One immutable ledger entry: a single stock change of one product."""

    __tablename__ = "inventory_transactions"
    __table_args__ = (
        CheckConstraint("quantity_changed > 0", name="ck_inventory_transactions_delta_positive"),
        CheckConstraint("old_quantity >= 0 AND new_quantity >= 0", name="ck_inventory_transactions_non_negative"),
        CheckConstraint(
            "(transaction_type = 'TOP_UP' AND new_quantity = old_quantity + quantity_changed)"
            " OR (transaction_type = 'USAGE' AND new_quantity = old_quantity - quantity_changed)",
            name="ck_inventory_transactions_arithmetic",
        ),
        Index("ix_inventory_transactions_product_created", "product_id", "created_at", "id"),
        Index("ix_inventory_transactions_business_created", "business_id", "created_at", "id"),
    )

    # Integer ids: per product, rows are inserted under the stock lock, so id order is commit order
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[str] = mapped_column(String, ForeignKey("products.id"), nullable=False)
    business_id: Mapped[str] = mapped_column(String, ForeignKey("businesses.id"), nullable=False)
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), nullable=False, index=True)
    transaction_type: Mapped[TransactionType] = mapped_column(
        Enum(TransactionType, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    old_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    new_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity_changed: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    reference_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return (
            f"<InventoryTransaction {self.id} product={self.product_id} "
            f"{self.transaction_type} {self.old_quantity}->{self.new_quantity}>"
        )


@event.listens_for(InventoryTransaction, "before_update")
def _reject_update(mapper, connection, target):
    raise LedgerImmutableError(f"Ledger entry {target.id} is immutable")


@event.listens_for(InventoryTransaction, "before_delete")
def _reject_delete(mapper, connection, target):
    raise LedgerImmutableError(f"Ledger entry {target.id} cannot be deleted")


# Database-side guard for statements that bypass the ORM (Core update/delete, raw SQL)
_APPEND_ONLY_MESSAGE = "inventory_transactions is append-only"

for _operation in ("UPDATE", "DELETE"):
    event.listen(
        InventoryTransaction.__table__,
        "after_create",
        DDL(
            f"CREATE TRIGGER inventory_transactions_no_{_operation.lower()} "
            f"BEFORE {_operation} ON inventory_transactions "
            f"BEGIN SELECT RAISE(ABORT, '{_APPEND_ONLY_MESSAGE}'); END"
        ).execute_if(dialect="sqlite"),
    )

event.listen(
    InventoryTransaction.__table__,
    "after_create",
    DDL(
        "CREATE OR REPLACE FUNCTION inventory_transactions_append_only() RETURNS trigger AS $$ "
        f"BEGIN RAISE EXCEPTION '{_APPEND_ONLY_MESSAGE}'; END; $$ LANGUAGE plpgsql"
    ).execute_if(dialect="postgresql"),
)
event.listen(
    InventoryTransaction.__table__,
    "after_create",
    DDL(
        "CREATE TRIGGER inventory_transactions_append_only "
        "BEFORE UPDATE OR DELETE ON inventory_transactions "
        "FOR EACH ROW EXECUTE FUNCTION inventory_transactions_append_only()"
    ).execute_if(dialect="postgresql"),
)
