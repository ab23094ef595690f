from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_ledger.errors import NotFound, ValidationError
from inventory_ledger.models.business import Business, Category
from inventory_ledger.models.product import Product
from inventory_ledger.schemas.product import BusinessCreate, CategoryCreate, ProductCreate

INITIAL_STOCK_REASON = "Initial stock"


def get_product(db: Session, product_id: str) -> Product | None:
    return db.query(Product).filter(Product.id == product_id).first()


def find_by_id(db: Session, product_id: str) -> Product:
    product = get_product(db, product_id)
    if not product:
        raise NotFound("Product not found")
    return product


def get_products(db: Session, product_ids) -> dict[str, Product]:
    ids = set(product_ids)
    if not ids:
        return {}
    return {p.id: p for p in db.scalars(select(Product).where(Product.id.in_(ids)))}


def list_product_ids(db: Session, business_id: str, category_id: str | None = None) -> list[str]:
    stmt = select(Product.id).where(Product.business_id == business_id)
    if category_id:
        stmt = stmt.where(Product.category_id == category_id)
    return list(db.scalars(stmt).all())


# --- Business / category ---

def get_business(db: Session, business_id: str) -> Business | None:
    return db.query(Business).filter(Business.id == business_id).first()


def find_active_business(db: Session, business_id: str) -> Business:
    business = get_business(db, business_id)
    if not business or not business.is_active:
        raise NotFound("Business not found")
    return business


def find_business_for_owner(db: Session, owner_id: str) -> Business:
    business = (
        db.query(Business)
        .filter(Business.owner_id == owner_id, Business.is_active == True)  # noqa: E712
        .order_by(Business.created_at)
        .first()
    )
    if not business:
        raise NotFound("You must own a business to view inventory history")
    return business


def create_business(db: Session, owner_id: str, data: BusinessCreate) -> Business:
    """Seed helper: business CRUD is owned by the registry service, not exposed here."""
    business = Business(owner_id=owner_id, name=data.name, business_type=data.business_type)
    db.add(business)
    db.commit()
    db.refresh(business)
    return business


def get_category(db: Session, category_id: str) -> Category | None:
    return db.query(Category).filter(Category.id == category_id).first()


def get_categories(db: Session, category_ids) -> dict[str, Category]:
    ids = set(category_ids)
    if not ids:
        return {}
    return {c.id: c for c in db.scalars(select(Category).where(Category.id.in_(ids)))}


def create_category(db: Session, business_id: str, data: CategoryCreate) -> Category:
    """Seed helper, like ``create_business``."""
    find_active_business(db, business_id)
    category = Category(business_id=business_id, name=data.name, description=data.description)
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


def deactivate_category(db: Session, category_id: str) -> Category | None:
    """Soft-delete a category. Ledger rows of its products are left untouched.

    Seed and test helper: category management belongs to the registry service.
    """
    category = get_category(db, category_id)
    if not category:
        return None
    category.is_active = False
    db.commit()
    db.refresh(category)
    return category


# --- Product registration ---

def register_product(db: Session, business_id: str, data: ProductCreate, actor_id: str) -> Product:
    """Create a product with an empty stock record, then book its initial stock.

    The initial quantity goes through the stock mutator so that the ledger
    replays to the stored quantity from the very first entry.
    """
    from inventory_ledger.services import inventory_service

    category = get_category(db, data.category_id)
    if not category or category.business_id != business_id:
        raise ValidationError(f"Category {data.category_id} does not belong to business {business_id}")

    product = Product(
        business_id=business_id,
        category_id=category.id,
        name=data.name,
        description=data.description,
        price=data.price,
        quantity=0,
        is_available=data.is_available,
    )
    db.add(product)
    db.commit()

    if data.quantity > 0:
        inventory_service.increment(db, product.id, data.quantity, actor_id, reason=INITIAL_STOCK_REASON)

    db.refresh(product)
    return product
