from datetime import datetime, timedelta, timezone

import jwt
from sqlalchemy import select
from sqlalchemy.orm import Session

from inventory_ledger.config import settings
from inventory_ledger.models.user import User


def create_access_token(user_id: str, email: str = "") -> str:
    payload = {
        "sub": user_id,
        "email": email,
        "exp": datetime.now(timezone.utc) + timedelta(hours=settings.ACCESS_TOKEN_EXPIRE_HOURS),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm="HS256")


def decode_token(token: str) -> dict | None:
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=["HS256"])
    except (jwt.ExpiredSignatureError, jwt.InvalidTokenError):
        return None


def get_user_by_id(db: Session, user_id: str) -> User | None:
    return db.query(User).filter(User.id == user_id).first()


def get_users(db: Session, user_ids) -> dict[str, User]:
    ids = set(user_ids)
    if not ids:
        return {}
    return {u.id: u for u in db.scalars(select(User).where(User.id.in_(ids)))}


def create_user(db: Session, email: str, name: str = "") -> User:
    """Seed helper: accounts are registered upstream, where tokens are issued."""
    existing = db.query(User).filter(User.email == email).first()
    if existing:
        raise ValueError(f"User '{email}' already exists")
    user = User(email=email, name=name or email)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user
