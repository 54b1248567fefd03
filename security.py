"""
Authentication and authorization.

Sessions are stateless HS256 JWTs carrying the user's id, email, name and role.
Handlers trust the role in the token; every protected handler goes through
`require_role`, which funnels into the single `authorize` check.
"""
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from bson import ObjectId
from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from passlib.context import CryptContext
from pydantic import BaseModel, EmailStr
from pymongo.database import Database as MongoDatabase

from database import create_document, utcnow
from schemas import User
from settings import DEFAULT_JWT_SECRET, JWT_EXPIRES_MIN, JWT_SECRET, OAUTH_CALLBACK_SECRET

logger = logging.getLogger("careercoach.auth")

if JWT_SECRET == DEFAULT_JWT_SECRET:
    logger.warning("JWT_SECRET is using a default value. Set JWT_SECRET in production.")

security = HTTPBearer(auto_error=False)
password_ctx = CryptContext(schemes=["bcrypt"], deprecated="auto")


class AuthenticationError(Exception):
    pass


class SessionUser(BaseModel):
    id: str
    email: str
    name: Optional[str] = None
    role: str


class GoogleIdentity(BaseModel):
    """Profile handed over by the OAuth callback once Google has verified it."""
    email: EmailStr
    name: str
    image: Optional[str] = None
    providerAccountId: str


def hash_password(password: str) -> str:
    return password_ctx.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    return password_ctx.verify(password, hashed)


def create_token(session: SessionUser) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": session.id,
        "email": session.email,
        "name": session.name,
        "role": session.role,
        "exp": now + timedelta(minutes=JWT_EXPIRES_MIN),
        "iat": now,
    }
    return jwt.encode(payload, JWT_SECRET, algorithm="HS256")


def decode_token(token: str) -> SessionUser:
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")
    if not payload.get("sub") or not payload.get("role"):
        raise HTTPException(status_code=401, detail="Invalid token")
    return SessionUser(id=payload["sub"], email=payload.get("email", ""), name=payload.get("name"), role=payload["role"])


def session_for(user: Dict[str, Any]) -> SessionUser:
    return SessionUser(id=str(user["_id"]), email=user["email"], name=user.get("name"), role=user.get("role", "client"))


def issue_session(user: Dict[str, Any]) -> Dict[str, Any]:
    session = session_for(user)
    return {"token": create_token(session), "user": session.model_dump()}


def authenticate_credentials(db: MongoDatabase, email: str, password: str) -> Dict[str, Any]:
    user = db["user"].find_one({"email": email.lower(), "provider": "credentials", "isActive": True})
    if not user or not user.get("passwordHash"):
        raise AuthenticationError("Invalid credentials")
    if not verify_password(password, user["passwordHash"]):
        raise AuthenticationError("Invalid credentials")
    return user


def sign_in_with_google(db: MongoDatabase, identity: GoogleIdentity) -> Dict[str, Any]:
    """Link a verified Google identity to a user and open a session for it.

    An existing account with the same email is switched to the google provider
    the first time; otherwise a client account is created. Returns `{token, user}`.
    """
    email = identity.email.lower()
    users = db["user"]
    user = users.find_one({"email": email})
    if user:
        if not user.get("isActive", True):
            raise AuthenticationError("Account is disabled")
        if user.get("provider") != "google":
            update = {
                "provider": "google",
                "providerId": identity.providerAccountId,
                "image": identity.image or user.get("image"),
                "updated_at": utcnow(),
            }
            users.update_one({"_id": user["_id"]}, {"$set": update})
            user.update(update)
    else:
        new_user = User(
            email=email,
            name=identity.name,
            image=identity.image,
            provider="google",
            providerId=identity.providerAccountId,
            emailVerified=utcnow(),
            role="client",
        )
        user_id = create_document(db, "user", new_user)
        user = users.find_one({"_id": ObjectId(user_id)})
        logger.info("Created client account for Google sign-in %s", email)
    return issue_session(user)


def callback_secret_matches(provided: Optional[str]) -> bool:
    if not OAUTH_CALLBACK_SECRET or not provided:
        return False
    return secrets.compare_digest(provided, OAUTH_CALLBACK_SECRET)


def authorize(session: Optional[SessionUser], required_role: Optional[str] = None) -> bool:
    """Admins pass every role check; other callers need the exact role."""
    if session is None:
        return False
    if required_role is None:
        return True
    return session.role == required_role or session.role == "admin"


def require_role(required_role: Optional[str] = None):
    def dependency(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> SessionUser:
        if credentials is None:
            raise HTTPException(status_code=401, detail="Authentication required")
        session = decode_token(credentials.credentials)
        if not authorize(session, required_role):
            raise HTTPException(status_code=403, detail=f"Access denied. {required_role.title()} role required.")
        return session

    return dependency


get_session = require_role()
