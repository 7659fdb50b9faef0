from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from coursehub.core.config import settings
from coursehub.core.rate_limit import rate_limit
from coursehub.core.security import create_access_token, get_current_user, hash_password, verify_password
from coursehub.core.security_audit_log import audit_log
from coursehub.db.session import get_db
from coursehub.models.user import User, UserRole

router = APIRouter(prefix="/auth", tags=["auth"])


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int | None = None


class MeResponse(BaseModel):
    id: str
    name: str
    role: str


class RegisterRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    password: str


def _token_response(user: User) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(user_id=str(user.id), role=user.role.value),
        expires_in=int(settings.jwt_access_token_minutes) * 60,
    )


@router.post("/register", response_model=TokenResponse)
def register(
    request: Request,
    payload: RegisterRequest,
    db: Session = Depends(get_db),
    _: object = rate_limit(key_prefix="auth_register", limit=10, window_seconds=60),
):
    if not settings.allow_public_register:
        raise HTTPException(status_code=403, detail="registration disabled")

    if not payload.password or len(payload.password) < int(settings.password_min_length or 0):
        raise HTTPException(status_code=400, detail="password too short")

    existing = db.scalar(select(User).where(User.name == payload.name))
    if existing is not None:
        audit_log(db=db, request=request, event_type="auth_register_failed", meta={"reason": "user_exists", "username": payload.name})
        db.commit()
        raise HTTPException(status_code=409, detail="user already exists")

    # Self-registration only ever creates students.
    user = User(name=payload.name, role=UserRole.student, password_hash=hash_password(payload.password))
    db.add(user)
    db.commit()
    db.refresh(user)

    audit_log(db=db, request=request, event_type="auth_register_success", actor_user_id=user.id, target_user_id=user.id)
    db.commit()

    return _token_response(user)


@router.post("/token", response_model=TokenResponse)
def token(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
    _: object = rate_limit(key_prefix="auth_token", limit=20, window_seconds=60),
):
    user = db.scalar(select(User).where(User.name == form_data.username))
    if user is None or not verify_password(form_data.password, user.password_hash):
        audit_log(db=db, request=request, event_type="auth_login_failed", meta={"username": form_data.username})
        db.commit()
        raise HTTPException(status_code=401, detail="invalid credentials")

    audit_log(
        db=db,
        request=request,
        event_type="auth_login_success",
        actor_user_id=user.id,
        target_user_id=user.id,
        meta={"user_agent": str(request.headers.get("user-agent") or "").strip()},
    )
    db.commit()

    return _token_response(user)


@router.get("/me", response_model=MeResponse)
def me(user: User = Depends(get_current_user)):
    return {"id": str(user.id), "name": user.name, "role": user.role.value}
