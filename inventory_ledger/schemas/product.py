from pydantic import BaseModel, Field

from inventory_ledger.models.product import MAX_QUANTITY


class BusinessCreate(BaseModel):
    name: str
    business_type: str = ""


class CategoryCreate(BaseModel):
    name: str
    description: str = ""


class ProductCreate(BaseModel):
    category_id: str
    name: str
    description: str = ""
    price: float = Field(0.0, ge=0)
    quantity: int = Field(0, ge=0, le=MAX_QUANTITY)  # initial stock, recorded as a TOP_UP entry
    is_available: bool = True
