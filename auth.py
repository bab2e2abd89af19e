import logging
from datetime import timedelta
from typing import Optional

import bcrypt
import jwt
from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, EmailStr, Field

import config
from database import create_document, get_db, maybe_object_id, serialize_doc, to_object_id, utcnow
from schemas import User as UserSchema

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

security = HTTPBearer(auto_error=False)


# ----------------------- Utils -----------------------
def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        return False


def create_token(payload: dict) -> str:
    exp = utcnow() + timedelta(days=config.JWT_EXPIRE_DAYS)
    to_encode = {**payload, "exp": exp}
    return jwt.encode(to_encode, config.JWT_SECRET, algorithm=config.JWT_ALGO)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGO])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


def is_admin_user(user: dict) -> bool:
    return bool(user.get("is_admin")) or (user.get("email") or "").lower() == config.ADMIN_EMAIL


def token_for(user: dict) -> str:
    user_id = str(user.get("_id") or user.get("id"))
    return create_token({"id": user_id, "email": user["email"], "is_admin": is_admin_user(user)})


def public_user(user: dict) -> dict:
    user = serialize_doc(user)
    return {
        "id": user["id"],
        "name": user.get("name"),
        "email": user.get("email"),
        "is_admin": bool(user.get("is_admin")),
    }


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db=Depends(get_db),
):
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="No token provided, authorization denied")
    payload = decode_token(credentials.credentials)
    user_id = maybe_object_id(payload.get("id"))
    if user_id is None:
        raise HTTPException(status_code=401, detail="Invalid token payload")
    user = db["user"].find_one({"_id": user_id})
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    if user.get("is_blocked"):
        raise HTTPException(status_code=403, detail="Your account has been blocked. Please contact support.")
    return serialize_doc(user)


def require_admin(user=Depends(get_current_user)):
    if not is_admin_user(user):
        raise HTTPException(status_code=403, detail="Access denied. Admin privileges required.")
    return user


def ensure_self_or_admin(user: dict, user_id: str) -> None:
    if user["id"] != user_id and not is_admin_user(user):
        raise HTTPException(status_code=403, detail="Not allowed")


# ----------------------- Models -----------------------
class SignupBody(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)


class LoginBody(BaseModel):
    email: EmailStr
    password: str


# ----------------------- Routes -----------------------
@router.post("/signup", status_code=201)
def signup(body: SignupBody, db=Depends(get_db)):
    email = body.email.strip().lower()
    if db["user"].find_one({"email": email}):
        raise HTTPException(status_code=400, detail="Email already registered")
    user = UserSchema(name=body.name.strip(), email=email, password_hash=hash_password(body.password))
    user_id = create_document(db, "user", user)
    logger.info("New user registered: %s", email)
    doc = db["user"].find_one({"_id": to_object_id(user_id)})
    return {"token": token_for(doc), "user": public_user(doc)}


@router.post("/login")
def login(body: LoginBody, db=Depends(get_db)):
    user = db["user"].find_one({"email": body.email.strip().lower()})
    if not user or not verify_password(body.password, user.get("password_hash")):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if user.get("is_blocked"):
        raise HTTPException(status_code=403, detail="Your account has been blocked. Please contact support.")
    return {"token": token_for(user), "user": public_user(user)}


@router.get("/me")
def me(user=Depends(get_current_user)):
    return user
