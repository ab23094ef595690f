from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from inventory_ledger.api.deps import get_current_user, get_owned_business, get_owned_product
from inventory_ledger.database import get_db
from inventory_ledger.errors import ValidationError
from inventory_ledger.models.business import Business
from inventory_ledger.models.inventory_transaction import TransactionType
from inventory_ledger.models.product import Product
from inventory_ledger.models.user import User
from inventory_ledger.schemas.inventory import (
    BusinessHistoryOut,
    InventoryChange,
    InventoryChangeOut,
    ProductHistoryOut,
)
from inventory_ledger.services import history_service, inventory_service, product_service

router = APIRouter(prefix="/inventory", tags=["Inventory"])


def product_history_filter(
    transaction_type: TransactionType | None = Query(None, alias="transactionType"),
    start_date: datetime | None = Query(None, alias="startDate"),
    end_date: datetime | None = Query(None, alias="endDate"),
    user_id: str | None = Query(None, alias="userId"),
    category_id: str | None = Query(None, alias="categoryId", include_in_schema=False),
) -> history_service.HistoryFilter:
    if category_id is not None:
        raise ValidationError("categoryId is only supported for business history")
    return history_service.HistoryFilter(
        transaction_type=transaction_type,
        start_date=start_date,
        end_date=end_date,
        user_id=user_id,
    )


def business_history_filter(
    transaction_type: TransactionType | None = Query(None, alias="transactionType"),
    start_date: datetime | None = Query(None, alias="startDate"),
    end_date: datetime | None = Query(None, alias="endDate"),
    user_id: str | None = Query(None, alias="userId"),
    category_id: str | None = Query(None, alias="categoryId"),
) -> history_service.HistoryFilter:
    return history_service.HistoryFilter(
        transaction_type=transaction_type,
        start_date=start_date,
        end_date=end_date,
        user_id=user_id,
        category_id=category_id,
    )


@router.post("/{product_id}/increment", response_model=InventoryChangeOut)
def increment_quantity(
    data: InventoryChange,
    product: Product = Depends(get_owned_product),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    summary = inventory_service.increment(
        db, product.id, data.quantity, user.id, reason=data.reason, reference_id=data.reference_id
    )
    return InventoryChangeOut(message="Quantity added successfully", transaction=summary)


@router.post("/{product_id}/decrement", response_model=InventoryChangeOut)
def decrement_quantity(
    data: InventoryChange,
    product: Product = Depends(get_owned_product),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    summary = inventory_service.decrement(
        db, product.id, data.quantity, user.id, reason=data.reason, reference_id=data.reference_id
    )
    return InventoryChangeOut(message="Quantity removed successfully", transaction=summary)


@router.get("/business/history", response_model=BusinessHistoryOut)
def my_business_history(
    filters: history_service.HistoryFilter = Depends(business_history_filter),
    page: int = 1,
    limit: int | None = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """History of the business owned by the caller."""
    business = product_service.find_business_for_owner(db, user.id)
    return history_service.get_business_history(db, business.id, filters, page=page, limit=limit)


@router.get("/business/{business_id}/history", response_model=BusinessHistoryOut)
def business_history(
    filters: history_service.HistoryFilter = Depends(business_history_filter),
    page: int = 1,
    limit: int | None = None,
    business: Business = Depends(get_owned_business),
    db: Session = Depends(get_db),
):
    return history_service.get_business_history(db, business.id, filters, page=page, limit=limit)


@router.get("/{product_id}/history", response_model=ProductHistoryOut)
def product_history(
    product: Product = Depends(get_owned_product),
    filters: history_service.HistoryFilter = Depends(product_history_filter),
    page: int = 1,
    limit: int | None = None,
    db: Session = Depends(get_db),
):
    return history_service.get_product_history(db, product.id, filters, page=page, limit=limit)
