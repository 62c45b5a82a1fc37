"""
Email/password accounts with opaque bearer sessions.

Passwords are stored as bcrypt hashes. A login creates a row in the
``sessions`` collection; routes resolve the caller through the
``current_user`` and ``require_admin`` dependencies.
"""
import secrets
from datetime import timedelta
from typing import Any, Dict, Optional

import bcrypt
import structlog
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pymongo.errors import DuplicateKeyError

from config import settings
from database import db, PASSWORD_RESETS, SESSIONS, USERS, create_document, to_object_id, utcnow

logger = structlog.get_logger(__name__)

bearer = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    raw = password.encode("utf-8")
    if len(raw) > 72:
        return False
    return bcrypt.checkpw(raw, password_hash.encode("utf-8"))


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": str(user["_id"]),
        "email": user["email"],
        "display_name": user.get("display_name"),
        "photo_url": user.get("photo_url"),
        "role": user.get("role", "customer"),
    }


def signup(email: str, password: str, name: Optional[str] = None) -> str:
    email = email.lower()
    if db[USERS].find_one({"email": email}):
        raise HTTPException(status_code=400, detail="User already exists")
    role = "admin" if email in settings.admin_emails else "customer"
    try:
        uid = create_document(USERS, {
            "email": email,
            "password_hash": hash_password(password),
            "display_name": name,
            "photo_url": None,
            "role": role,
        })
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="User already exists")
    logger.info("user_signed_up", user_id=uid, role=role)
    return uid


def login(email: str, password: str) -> Dict[str, Any]:
    user = db[USERS].find_one({"email": email.lower()})
    if not user or not verify_password(password, user["password_hash"]):
        logger.info("login_failed", email=email.lower())
        raise HTTPException(status_code=401, detail="Invalid email or password")
    token = secrets.token_urlsafe(32)
    db[SESSIONS].insert_one({
        "token": token,
        "user_id": str(user["_id"]),
        "created_at": utcnow(),
        "expires_at": utcnow() + timedelta(hours=settings.SESSION_TTL_HOURS),
    })
    logger.info("user_logged_in", user_id=str(user["_id"]))
    return {"access_token": token, "user_id": str(user["_id"]), "role": user.get("role", "customer")}


def logout(token: str) -> None:
    db[SESSIONS].delete_one({"token": token})


def request_password_reset(email: str) -> None:
    # Same answer whether or not the account exists
    user = db[USERS].find_one({"email": email.lower()})
    if not user:
        logger.info("password_reset_unknown_email")
        return
    token = secrets.token_urlsafe(32)
    db[PASSWORD_RESETS].insert_one({
        "token": token,
        "user_id": str(user["_id"]),
        "created_at": utcnow(),
        "expires_at": utcnow() + timedelta(minutes=settings.RESET_TOKEN_TTL_MINUTES),
    })
    # The reset mail is sent by the external mailer from this record
    logger.info("password_reset_requested", user_id=str(user["_id"]))


def confirm_password_reset(token: str, new_password: str) -> None:
    reset = db[PASSWORD_RESETS].find_one_and_delete(
        {"token": token, "expires_at": {"$gt": utcnow()}}
    )
    if not reset:
        raise HTTPException(status_code=400, detail="Invalid or expired reset token")
    db[USERS].update_one(
        {"_id": to_object_id(reset["user_id"])},
        {"$set": {"password_hash": hash_password(new_password), "updated_at": utcnow()}},
    )
    db[SESSIONS].delete_many({"user_id": reset["user_id"]})
    logger.info("password_reset_completed", user_id=reset["user_id"])


def current_user(creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer)) -> Dict[str, Any]:
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    if creds is None or not creds.credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")
    session = db[SESSIONS].find_one(
        {"token": creds.credentials, "expires_at": {"$gt": utcnow()}}
    )
    if not session:
        raise HTTPException(status_code=401, detail="Session expired or invalid")
    user = db[USERS].find_one({"_id": to_object_id(session["user_id"])})
    if not user:
        raise HTTPException(status_code=401, detail="Session expired or invalid")
    user["token"] = creds.credentials
    return user


def require_admin(user: Dict[str, Any] = Depends(current_user)) -> Dict[str, Any]:
    if user.get("role") != "admin":
        logger.warning("admin_access_denied", user_id=str(user["_id"]))
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
