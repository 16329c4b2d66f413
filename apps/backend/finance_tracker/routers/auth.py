import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import or_, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from finance_tracker.config import settings
from finance_tracker.db import get_db
from finance_tracker.errors import ValidationError
from finance_tracker.orm_models import User
from finance_tracker.schemas.auth import (
    AuthResp,
    LoginBody,
    ProfilePatch,
    RefreshBody,
    RegisterBody,
    UserOut,
)
from finance_tracker.services.categories import seed_default_categories
from finance_tracker.services.uow import unit_of_work
from finance_tracker.utils.auth import (
    create_tokens,
    decode_token,
    get_current_user,
    hash_password,
    verify_password,
)

router = APIRouter(prefix="/api/auth", tags=["auth"])
log = logging.getLogger(__name__)


def _auth_resp(u: User) -> dict:
    pair = create_tokens(u.id)
    return {**pair.model_dump(), "user": UserOut.model_validate(u)}


@router.post("/register", response_model=AuthResp, status_code=status.HTTP_201_CREATED)
def register(body: RegisterBody, db: Session = Depends(get_db)):
    if not settings.ALLOW_REGISTRATION:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Registration is currently disabled.",
        )
    email = body.email.strip().lower()
    if "@" not in email:
        raise ValidationError("Invalid email address")
    with unit_of_work(db, "register"):
        taken = db.execute(
            select(User.id).where(or_(User.email == email, User.username == body.username))
        ).first()
        if taken:
            raise ValidationError("User with this email or username already exists")
        u = User(
            username=body.username.strip(),
            email=email,
            password_hash=hash_password(body.password),
            first_name=body.first_name.strip(),
            last_name=body.last_name.strip(),
            currency=settings.DEFAULT_CURRENCY,
        )
        db.add(u)
        db.flush()
    if settings.SEED_DEFAULT_CATEGORIES:
        seed_default_categories(db, u.id)
    log.info("auth.register user=%s", u.id)
    return _auth_resp(u)


@router.post("/login", response_model=AuthResp)
def login(body: LoginBody, db: Session = Depends(get_db)):
    try:
        u = db.execute(
            select(User).where(User.email == body.email.strip().lower())
        ).scalar_one_or_none()
    except OperationalError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database unavailable",
        ) from e
    if not u or not u.is_active or not verify_password(body.password, u.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials"
        )
    return _auth_resp(u)


@router.post("/refresh", response_model=AuthResp)
def refresh(body: RefreshBody, db: Session = Depends(get_db)):
    user_id = decode_token(body.refresh_token, "refresh")
    # re-check user status from DB
    u = db.get(User, user_id)
    if not u or not u.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="User disabled"
        )
    return _auth_resp(u)


@router.get("/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)):
    return user


@router.put("/profile", response_model=UserOut)
def update_profile(
    body: ProfilePatch,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    with unit_of_work(db, "update_profile"):
        for key, value in body.model_dump(exclude_unset=True).items():
            if value is None:
                continue
            if key == "currency" and not value.isalpha():
                raise ValidationError("Currency must be a 3-letter code")
            setattr(user, key, value)
        db.flush()
    return user
