import hashlib
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from bson.objectid import ObjectId
from bson.errors import InvalidId
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pymongo.database import Database

from database import get_db, serialize_doc

JWT_SECRET = os.getenv("JWT_SECRET", "devsecret")
JWT_ALGO = "HS256"
JWT_EXPIRES_DAYS = int(os.getenv("JWT_EXPIRES_DAYS", "7"))
AUTH_SALT = os.getenv("AUTH_SALT", "bookstore")

# auto_error=False so a missing header is a 401 from us, not FastAPI's 403
security = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return hashlib.sha256((password + AUTH_SALT).encode()).hexdigest()


def create_token(payload: dict) -> str:
    exp = datetime.now(timezone.utc) + timedelta(days=JWT_EXPIRES_DAYS)
    to_encode = {**payload, "exp": exp}
    return jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALGO)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGO])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


def token_for(user: dict) -> str:
    return create_token({"id": user["id"], "email": user["email"], "role": user.get("role", "BUYER")})


def _load_user(db: Database, user_id: Optional[str]) -> Optional[dict]:
    if not user_id:
        return None
    try:
        user = db["user"].find_one({"_id": ObjectId(user_id)})
    except (InvalidId, TypeError):
        return None
    return serialize_doc(user)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Database = Depends(get_db),
):
    if credentials is None:
        raise HTTPException(status_code=401, detail="No token, authorization denied")
    payload = decode_token(credentials.credentials)
    user_id = payload.get("id")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token payload")
    user = _load_user(db, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    if not user.get("is_active", True):
        raise HTTPException(status_code=403, detail="User account is deactivated")
    return user


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Database = Depends(get_db),
):
    """Like get_current_user but anonymous callers (or bad tokens) get None."""
    if credentials is None:
        return None
    try:
        payload = jwt.decode(credentials.credentials, JWT_SECRET, algorithms=[JWT_ALGO])
    except jwt.InvalidTokenError:
        return None
    user = _load_user(db, payload.get("id"))
    if not user or not user.get("is_active", True):
        return None
    return user


def require_roles(*roles: str):
    async def dependency(user=Depends(get_current_user)):
        if user.get("role") not in roles:
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user

    return dependency


def is_admin(user: Optional[dict]) -> bool:
    return bool(user) and user.get("role") == "ADMIN"
