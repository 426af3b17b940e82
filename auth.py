import logging
import re
from datetime import timedelta
from typing import Any, Dict, Optional

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from pydantic import BaseModel, EmailStr, Field
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from config import Settings
from database import COLL_USER, get_db, utcnow
from mailer import EmailError
from schemas import User
from security import (
    GoogleAuthError,
    create_access_token,
    decode_access_token,
    generate_reset_token,
    hash_password,
    verify_password,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])
security = HTTPBearer(auto_error=False)

MIN_PASSWORD_LENGTH = 6
MOBILE_RE = re.compile(r"^[0-9]{10}$")

INVALID_CREDENTIALS = "Invalid credentials"
RESET_REQUESTED = "If an account with that email exists, a password reset link has been sent."
RESET_TOKEN_INVALID = "Password reset token is invalid or has expired."
PASSWORD_TOO_SHORT = f"Password must be at least {MIN_PASSWORD_LENGTH} characters long."


# ---------------------- Models ----------------------
class SignupRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    mobile: Optional[str] = None
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=128)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class GoogleLoginRequest(BaseModel):
    token: str


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    password: str = ""


class ProfileUpdateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr


class TokenResponse(BaseModel):
    success: bool = True
    token: str
    user: Dict[str, Any]


# ---------------------- Dependencies ----------------------
def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def public_user(user_doc: dict) -> dict:
    if not user_doc:
        return {}
    return {
        "id": str(user_doc.get("_id")),
        "name": user_doc.get("name"),
        "email": user_doc.get("email"),
        "mobile": user_doc.get("mobile"),
        "avatar_url": user_doc.get("avatar_url"),
        "is_verified": user_doc.get("is_verified", False),
        "google_linked": bool(user_doc.get("google_id")),
        "created_at": user_doc.get("created_at"),
    }


def _user_id_from_token(settings: Settings, token: str) -> Optional[ObjectId]:
    try:
        payload = decode_access_token(settings, token)
        return ObjectId(payload.get("sub"))
    except (JWTError, InvalidId, TypeError):
        return None


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(get_settings),
    db: Database = Depends(get_db),
) -> dict:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    user_id = _user_id_from_token(settings, credentials.credentials)
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    user = db[COLL_USER].find_one({"_id": user_id})
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


def get_optional_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(get_settings),
) -> Optional[str]:
    """User id from a valid bearer token, or None for anonymous callers."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        return None
    user_id = _user_id_from_token(settings, credentials.credentials)
    return str(user_id) if user_id else None


def _session_response(settings: Settings, user: dict) -> dict:
    token = create_access_token(settings, {"sub": str(user["_id"])})
    return {"success": True, "token": token, "user": public_user(user)}


# ---------------------- Routes ----------------------
@router.post("/signup", status_code=status.HTTP_201_CREATED)
def signup(payload: SignupRequest, db: Database = Depends(get_db)):
    email = str(payload.email).lower()
    mobile = payload.mobile.strip() if payload.mobile else None
    if mobile is not None and not MOBILE_RE.match(mobile):
        raise HTTPException(status_code=400, detail="Please provide a valid 10-digit mobile number")
    users = db[COLL_USER]
    if users.find_one({"email": email}):
        raise HTTPException(status_code=400, detail="User already exists with this email")
    if mobile and users.find_one({"mobile": mobile}):
        raise HTTPException(status_code=400, detail="User already exists with this mobile number")

    doc = User(
        name=payload.name.strip(),
        email=email,
        mobile=mobile,
        password_hash=hash_password(payload.password),
    ).model_dump(exclude_none=True)
    now = utcnow()
    doc.update({"created_at": now, "updated_at": now})
    try:
        users.insert_one(doc)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="User already exists with this email or mobile number")
    logger.info("New user signed up: %s", email)
    return {"success": True, "message": "User created successfully. Please login."}


@router.post("/login", response_model=TokenResponse)
def login(payload: LoginRequest, settings: Settings = Depends(get_settings), db: Database = Depends(get_db)):
    user = db[COLL_USER].find_one({"email": str(payload.email).lower()})
    # Unknown email and wrong password must be indistinguishable.
    if not user or not verify_password(payload.password, user.get("password_hash")):
        raise HTTPException(status_code=400, detail=INVALID_CREDENTIALS)
    return _session_response(settings, user)


@router.post("/google", response_model=TokenResponse)
def google_login(
    payload: GoogleLoginRequest,
    request: Request,
    settings: Settings = Depends(get_settings),
    db: Database = Depends(get_db),
):
    try:
        claims = request.app.state.google_verifier.verify(payload.token)
    except GoogleAuthError as e:
        logger.info("Google sign-in rejected: %s", e)
        raise HTTPException(status_code=400, detail="Google authentication failed")

    email = str(claims["email"]).lower()
    google_id = str(claims["sub"])
    users = db[COLL_USER]
    user = users.find_one({"$or": [{"email": email}, {"google_id": google_id}]})
    now = utcnow()

    if user is None:
        doc = User(
            name=claims.get("name") or email.split("@")[0],
            email=email,
            avatar_url=claims.get("picture"),
            google_id=google_id,
            is_verified=True,
        ).model_dump(exclude_none=True)
        doc.update({"created_at": now, "updated_at": now})
        try:
            doc["_id"] = users.insert_one(doc).inserted_id
        except DuplicateKeyError:
            # a concurrent sign-in created the account first
            doc = users.find_one({"email": email})
        user = doc
        logger.info("Created account from Google sign-in: %s", email)
    elif not user.get("google_id"):
        updates = {"google_id": google_id, "is_verified": True, "updated_at": now}
        if not user.get("avatar_url") and claims.get("picture"):
            updates["avatar_url"] = claims["picture"]
        user = users.find_one_and_update(
            {"_id": user["_id"]}, {"$set": updates}, return_document=ReturnDocument.AFTER
        )
        logger.info("Linked Google account to existing user: %s", email)

    return _session_response(settings, user)


@router.post("/forgot-password")
def forgot_password(
    payload: ForgotPasswordRequest,
    request: Request,
    settings: Settings = Depends(get_settings),
    db: Database = Depends(get_db),
):
    email = str(payload.email).lower()
    user = db[COLL_USER].find_one({"email": email})
    if user:
        token = generate_reset_token()
        expires = utcnow() + timedelta(minutes=settings.reset_token_ttl_min)
        db[COLL_USER].update_one(
            {"_id": user["_id"]},
            {"$set": {"reset_token": token, "reset_expires": expires, "updated_at": utcnow()}},
        )
        try:
            request.app.state.mailer.send_password_reset(email, token)
        except EmailError as e:
            logger.error("Could not send reset email to %s: %s", email, e)
    return {"success": True, "message": RESET_REQUESTED}


@router.get("/verify-reset-token/{token}")
def verify_reset_token(token: str, db: Database = Depends(get_db)):
    user = db[COLL_USER].find_one({"reset_token": token, "reset_expires": {"$gt": utcnow()}})
    if not user:
        raise HTTPException(status_code=400, detail=RESET_TOKEN_INVALID)
    return {"success": True, "message": "Token is valid", "email": user["email"]}


@router.post("/reset-password/{token}")
def reset_password(token: str, payload: ResetPasswordRequest, request: Request, db: Database = Depends(get_db)):
    if len(payload.password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(status_code=400, detail=PASSWORD_TOO_SHORT)
    new_hash = hash_password(payload.password)
    # Matching and clearing the token in one update makes it single-use.
    user = db[COLL_USER].find_one_and_update(
        {"reset_token": token, "reset_expires": {"$gt": utcnow()}},
        {
            "$set": {"password_hash": new_hash, "updated_at": utcnow()},
            "$unset": {"reset_token": "", "reset_expires": ""},
        },
        return_document=ReturnDocument.AFTER,
    )
    if not user:
        raise HTTPException(status_code=400, detail=RESET_TOKEN_INVALID)
    try:
        request.app.state.mailer.send_password_changed(user["email"])
    except EmailError as e:
        logger.error("Could not send reset confirmation to %s: %s", user["email"], e)
    return {"success": True, "message": "Password has been reset successfully."}


@router.get("/profile")
def get_profile(user: dict = Depends(get_current_user)):
    return public_user(user)


@router.put("/profile")
def update_profile(
    payload: ProfileUpdateRequest,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    email = str(payload.email).lower()
    users = db[COLL_USER]
    if users.find_one({"email": email, "_id": {"$ne": user["_id"]}}):
        raise HTTPException(status_code=400, detail="Email already in use")
    try:
        updated = users.find_one_and_update(
            {"_id": user["_id"]},
            {"$set": {"name": payload.name.strip(), "email": email, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Email already in use")
    if not updated:
        raise HTTPException(status_code=404, detail="User not found")
    return {"success": True, "message": "Profile updated successfully", "user": public_user(updated)}
