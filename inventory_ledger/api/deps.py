"""Request-scoped collaborators: the authenticated actor and ownership checks."""

from uuid import UUID

from fastapi import Cookie, Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from inventory_ledger.database import get_db
from inventory_ledger.errors import Forbidden, Unauthorized, ValidationError
from inventory_ledger.models.business import Business
from inventory_ledger.models.product import Product
from inventory_ledger.models.user import User
from inventory_ledger.services import auth_service, product_service

bearer_scheme = HTTPBearer(auto_error=False)


def _require_uuid(value: str, name: str) -> str:
    try:
        UUID(value)
    except ValueError:
        raise ValidationError(f"Invalid {name}") from None
    return value


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    token: str | None = Cookie(default=None, alias="token"),
    db: Session = Depends(get_db),
) -> User:
    """Dependency: resolve the acting user from a Bearer header or the token cookie."""
    raw = credentials.credentials if credentials else token
    if not raw:
        raise Unauthorized("Not authenticated")
    payload = auth_service.decode_token(raw)
    if not payload:
        raise Unauthorized("Invalid or expired token")
    user = auth_service.get_user_by_id(db, payload.get("sub", ""))
    if not user or not user.is_active:
        raise Unauthorized("User not found or disabled")
    return user


def get_owned_product(
    product_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Product:
    product = product_service.find_by_id(db, _require_uuid(product_id, "product ID"))
    if product.business.owner_id != user.id:
        raise Forbidden("You are not authorized to access this product")
    return product


def get_owned_business(
    business_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Business:
    business = product_service.find_active_business(db, _require_uuid(business_id, "business ID"))
    if business.owner_id != user.id:
        raise Forbidden("You are not authorized to access this business")
    return business
