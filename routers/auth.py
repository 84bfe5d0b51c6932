import logging
from typing import Annotated, Any, Dict, Optional

from fastapi import APIRouter, Cookie, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from itsdangerous import BadData, URLSafeTimedSerializer
from passlib.context import CryptContext
from pydantic import ValidationError as PydanticValidationError
from sqlmodel import select

import store
from config import settings
from db import SessionDep
from errors import ConflictError, ValidationError
from identity import Identity
from models import User
from schemas import LoginData, UserCreate, UserRead

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

SESSION_COOKIE = "session"

serializer = URLSafeTimedSerializer(settings.secret_key)


pwd_context = CryptContext(
    schemes=["pbkdf2_sha256"],
    deprecated="auto",
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_session_token(user_id: int, role: str) -> str:
    """
    Store user_id + role in the signed token.
    Example data:
        {"user_id": 3, "role": "volunteer"}
    """
    return serializer.dumps({"user_id": user_id, "role": role})


def verify_session_token(token: str, max_age_seconds: Optional[int] = None):
    """
    Returns dict {'user_id': ..., 'role': ...} if valid,
    or None if token is invalid/expired.
    """
    try:
        return serializer.loads(token, max_age=max_age_seconds or settings.session_max_age)
    except BadData:
        return None


def _identity_from_token(session: SessionDep, session_token: Optional[str]) -> Optional[Identity]:
    if session_token is None:
        return None
    data = verify_session_token(session_token)
    if not data:
        return None
    user = store.get_user(session, data["user_id"])
    # A role change invalidates existing sessions.
    if user is None or user.role != data.get("role"):
        return None
    return Identity.from_user(user)


def get_current_identity(
    session: SessionDep,
    session_token: Optional[str] = Cookie(default=None, alias=SESSION_COOKIE),
) -> Identity:
    """
    Reads the 'session' cookie, verifies the token and looks up the user.
    Raises 401 if not logged in / invalid.
    """
    if session_token is None:
        raise HTTPException(status_code=401, detail="Unauthorized. Please login.")
    identity = _identity_from_token(session, session_token)
    if identity is None:
        raise HTTPException(status_code=401, detail="Invalid or expired session")
    return identity


IdentityDep = Annotated[Identity, Depends(get_current_identity)]


async def read_payload(request: Request) -> Dict[str, Any]:
    """
    Body as a dict, from either JSON (API clients) or form-data (HTML forms).
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            data = await request.json()
        except ValueError as exc:
            raise ValidationError("Malformed JSON body") from exc
        if not isinstance(data, dict):
            raise ValidationError("Request body must be an object")
        return data
    form = await request.form()
    return {key: value for key, value in form.items() if isinstance(value, str)}


def _set_session_cookie(response: Response, user: User) -> None:
    response.set_cookie(
        key=SESSION_COOKIE,
        value=create_session_token(user.id, user.role),
        httponly=True,
        secure=False,
        samesite="lax",
        max_age=settings.session_max_age,
    )


@router.post("/register", status_code=201)
async def register(request: Request, session: SessionDep):
    """
    Register a new requester or volunteer and start a session.
    Admins cannot self-register.
    """
    data = await read_payload(request)
    try:
        user_in = UserCreate(**data)
    except PydanticValidationError as exc:
        raise ValidationError("All fields are required and role must be requester or volunteer") from exc

    with store.atomic(session):
        existing = session.exec(
            select(User).where(User.email == user_in.email)
        ).first()
        if existing:
            raise ConflictError("Email already registered")

        user = store.insert(
            session,
            User(
                email=user_in.email,
                name=user_in.name,
                password_hash=hash_password(user_in.password),
                role=user_in.role,
                location=user_in.location,
            ),
        )
    user = store.reload(session, user)
    logger.info("User registered: %s (%s)", user.email, user.role)

    resp = JSONResponse(
        {
            "message": "Registration successful",
            "user": UserRead.model_validate(user).model_dump(mode="json"),
        },
        status_code=201,
    )
    _set_session_cookie(resp, user)
    return resp


@router.post("/login")
async def login(request: Request, session: SessionDep):
    """
    Log in with email + password and set a signed session cookie.
    """
    data = await read_payload(request)
    try:
        payload = LoginData(**data)
    except PydanticValidationError as exc:
        raise ValidationError("Email and password are required") from exc

    with store.atomic(session, commit=False):
        user = session.exec(
            select(User).where(User.email == payload.email)
        ).first()

    if user is None or not verify_password(payload.password, user.password_hash):
        logger.info("Failed login for %s", payload.email)
        raise HTTPException(status_code=401, detail="Invalid email or password")

    resp = JSONResponse(
        {
            "message": "Login successful",
            "user": UserRead.model_validate(user).model_dump(mode="json"),
        }
    )
    _set_session_cookie(resp, user)
    return resp


@router.post("/logout")
def logout():
    """
    Clear the session cookie.
    """
    response = JSONResponse({"message": "Logout successful"})
    response.delete_cookie(SESSION_COOKIE)
    return response


@router.get("/me")
def read_me(identity: IdentityDep, session: SessionDep):
    """
    Get info about the currently logged-in user.
    """
    user = store.get_user(session, identity.id)
    return {"user": UserRead.model_validate(user)}
