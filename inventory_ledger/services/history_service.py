"""Read-only history queries over the inventory ledger.

Products, categories and actors are resolved with batched lookups after the
page of ledger entries has been fetched, so the ledger store itself only ever
filters on ids, type and time.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from inventory_ledger.config import settings
from inventory_ledger.errors import NotFound, ValidationError
from inventory_ledger.models.inventory_transaction import InventoryTransaction, TransactionType
from inventory_ledger.schemas.inventory import (
    ActorOut,
    BusinessHistoryOut,
    BusinessOut,
    CategoryTransactionsOut,
    Pagination,
    ProductHistoryOut,
    ProductTransactionsOut,
    TransactionOut,
)
from inventory_ledger.services import auth_service, ledger_store, product_service

# OFFSET must fit a 32-bit bind parameter
MAX_OFFSET = 2**31 - 1


@dataclass(frozen=True)
class HistoryFilter:
    transaction_type: TransactionType | str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    user_id: str | None = None
    category_id: str | None = None  # business history only


def build_pagination(page: int, limit: int, total: int) -> Pagination:
    total_pages = math.ceil(total / limit) if total else 0
    return Pagination(
        current_page=page,
        total_pages=total_pages,
        total_records=total,
        has_next_page=page < total_pages,
        has_prev_page=page > 1,
    )


def _resolve_page(page: int, limit: int | None) -> tuple[int, int]:
    if limit is None:
        limit = settings.HISTORY_DEFAULT_LIMIT
    if page < 1:
        raise ValidationError("Page number must be greater than 0")
    if limit < 1 or limit > settings.HISTORY_MAX_LIMIT:
        raise ValidationError(f"Limit must be between 1 and {settings.HISTORY_MAX_LIMIT}")
    if (page - 1) * limit > MAX_OFFSET:
        raise ValidationError("Page number too large")
    return page, limit


def _to_utc_naive(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _ledger_filter(history_filter: HistoryFilter, **scope) -> ledger_store.LedgerFilter:
    transaction_type = history_filter.transaction_type
    if transaction_type is not None and not isinstance(transaction_type, TransactionType):
        try:
            transaction_type = TransactionType(transaction_type)
        except ValueError:
            raise ValidationError("transactionType must be TOP_UP or USAGE") from None

    start = _to_utc_naive(history_filter.start_date)
    end = _to_utc_naive(history_filter.end_date)
    if start and end and start > end:
        raise ValidationError("startDate must not be after endDate")

    return ledger_store.LedgerFilter(
        transaction_type=transaction_type,
        start_date=start,
        end_date=end,
        user_id=history_filter.user_id,
        **scope,
    )


def _transactions_out(db: Session, entries: list[InventoryTransaction]) -> list[TransactionOut]:
    users = auth_service.get_users(db, {e.user_id for e in entries})
    result = []
    for entry in entries:
        out = TransactionOut.model_validate(entry)
        user = users.get(entry.user_id)
        if user:
            out.user = ActorOut(id=user.id, name=user.name, email=user.email)
        result.append(out)
    return result


def get_product_history(
    db: Session,
    product_id: str,
    history_filter: HistoryFilter | None = None,
    page: int = 1,
    limit: int | None = None,
) -> ProductHistoryOut:
    """Ledger entries of one product, newest first.

    History stays visible after the product's category is deactivated: the
    ledger does not depend on the current category state.
    """
    page, limit = _resolve_page(page, limit)
    ledger_filter = _ledger_filter(history_filter or HistoryFilter(), product_id=product_id)
    product_service.find_by_id(db, product_id)

    entries, total = ledger_store.query(db, ledger_filter, order="desc", offset=(page - 1) * limit, limit=limit)
    transactions = _transactions_out(db, entries)
    message = (
        "Product inventory history retrieved successfully" if transactions
        else "No product inventory history to display"
    )
    return ProductHistoryOut(
        message=message,
        transactions=transactions,
        pagination=build_pagination(page, limit, total),
    )


def get_business_history(
    db: Session,
    business_id: str,
    history_filter: HistoryFilter | None = None,
    page: int = 1,
    limit: int | None = None,
) -> BusinessHistoryOut:
    """One page of a business's ledger grouped by category, then product.

    ``current_quantity`` is read from the stock record at query time. Products
    whose category was deactivated are kept, under a category group flagged
    ``is_active=False``.
    """
    history_filter = history_filter or HistoryFilter()
    page, limit = _resolve_page(page, limit)
    business = product_service.find_active_business(db, business_id)

    scope: dict = {"business_id": business_id}
    if history_filter.category_id:
        category = product_service.get_category(db, history_filter.category_id)
        if not category or category.business_id != business_id:
            raise NotFound("Category not found")
        scope["product_ids"] = tuple(product_service.list_product_ids(db, business_id, category.id))
    ledger_filter = _ledger_filter(history_filter, **scope)

    entries, total = ledger_store.query(db, ledger_filter, order="desc", offset=(page - 1) * limit, limit=limit)
    transactions = _transactions_out(db, entries)

    products = product_service.get_products(db, {t.product_id for t in transactions})
    categories = product_service.get_categories(db, {p.category_id for p in products.values()})

    groups: dict[str, dict] = {}
    for txn in transactions:
        product = products[txn.product_id]
        category = categories[product.category_id]
        group = groups.setdefault(category.id, {"category": category, "products": {}})
        product_group = group["products"].setdefault(product.id, {"product": product, "transactions": []})
        product_group["transactions"].append(txn)

    category_out = []
    for group in groups.values():
        category = group["category"]
        product_out = [
            ProductTransactionsOut(
                id=pg["product"].id,
                name=pg["product"].name,
                description=pg["product"].description or "",
                price=pg["product"].price,
                current_quantity=pg["product"].quantity,
                transactions=pg["transactions"],
            )
            for pg in group["products"].values()
        ]
        category_out.append(
            CategoryTransactionsOut(
                id=category.id,
                name=category.name,
                description=category.description or "",
                is_active=category.is_active,
                total_transactions=sum(len(p.transactions) for p in product_out),
                products=product_out,
            )
        )

    message = (
        "Business inventory history retrieved successfully" if transactions
        else "No business inventory history to display"
    )
    return BusinessHistoryOut(
        message=message,
        business=BusinessOut(id=business.id, name=business.name, business_type=business.business_type or ""),
        categories=category_out,
        total_transactions=total,
        pagination=build_pagination(page, limit, total),
    )
