from datetime import datetime, timezone
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from inventory_ledger.models.inventory_transaction import TransactionType
from inventory_ledger.models.product import MAX_QUANTITY


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# --- Mutations ---

class InventoryChange(CamelModel):
    quantity: int = Field(..., gt=0, le=MAX_QUANTITY)
    reason: str | None = Field(None, max_length=500)
    reference_id: UUID | None = None


class TransactionSummary(CamelModel):
    product_id: str
    product_name: str
    old_quantity: int
    new_quantity: int
    quantity_changed: int
    transaction_type: TransactionType
    transaction_id: int


class InventoryChangeOut(CamelModel):
    message: str
    transaction: TransactionSummary


# --- History ---

class ActorOut(CamelModel):
    id: str
    name: str
    email: str


class TransactionOut(CamelModel):
    id: int
    product_id: str
    business_id: str
    user_id: str
    transaction_type: TransactionType
    old_quantity: int
    new_quantity: int
    quantity_changed: int
    reason: str | None = None
    reference_id: str | None = None
    created_at: datetime
    user: ActorOut | None = None

    @field_validator("created_at")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        # stored naive, always UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class Pagination(CamelModel):
    current_page: int
    total_pages: int
    total_records: int
    has_next_page: bool
    has_prev_page: bool


class ProductHistoryOut(CamelModel):
    message: str
    transactions: list[TransactionOut]
    pagination: Pagination


class BusinessOut(CamelModel):
    id: str
    name: str
    business_type: str = ""


class ProductTransactionsOut(CamelModel):
    id: str
    name: str
    description: str = ""
    price: float
    current_quantity: int
    transactions: list[TransactionOut]


class CategoryTransactionsOut(CamelModel):
    id: str
    name: str
    description: str = ""
    is_active: bool
    total_transactions: int
    products: list[ProductTransactionsOut]


class BusinessHistoryOut(CamelModel):
    message: str
    business: BusinessOut
    categories: list[CategoryTransactionsOut]
    total_transactions: int
    pagination: Pagination


# --- Reports ---

class LedgerBreakOut(CamelModel):
    transaction_id: int
    expected_old_quantity: int
    old_quantity: int
    new_quantity: int
    problem: str


class ReconciliationOut(CamelModel):
    product_id: str
    current_quantity: int
    replayed_quantity: int
    entry_count: int
    total_top_up: int
    total_usage: int
    consistent: bool
    breaks: list[LedgerBreakOut]
