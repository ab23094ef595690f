from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from inventory_ledger.api.deps import get_owned_product
from inventory_ledger.database import get_db
from inventory_ledger.models.product import Product
from inventory_ledger.schemas.inventory import ReconciliationOut
from inventory_ledger.services import report_service

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.get("/inventory/{product_id}/reconciliation", response_model=ReconciliationOut)
def inventory_reconciliation(product: Product = Depends(get_owned_product), db: Session = Depends(get_db)):
    return report_service.reconcile_product(db, product.id)
