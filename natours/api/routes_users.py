"""
User routes: authentication, the current user's own profile, and admin
management of user accounts.
"""

from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field, model_validator
from sqlalchemy.orm import Session

from natours.api import handler_factory as factory
from natours.core.config import settings
from natours.core.errors import AppError
from natours.db.api_features import parse_query_string
from natours.db.database import get_db
from natours.db.repositories import USER_PUBLIC_FIELDS, UserRepository, public_user
from natours.services import auth
from natours.services.auth import protect, restrict_to

router = APIRouter(prefix="/users", tags=["users"])

Role = Literal["user", "guide", "lead-guide", "admin"]


# ============================================================================
# REQUEST SCHEMAS
# ============================================================================

class PasswordPair(BaseModel):
    password: str = Field(..., min_length=8)
    password_confirm: str = Field(..., alias="passwordConfirm")

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.password_confirm:
            raise ValueError("Passwords are not the same")
        return self


class UserSignup(PasswordPair):
    name: str = Field(..., min_length=1)
    email: EmailStr
    photo: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class ForgotPasswordRequest(BaseModel):
    email: Optional[str] = None


class UpdatePasswordRequest(PasswordPair):
    password_current: str = Field(..., alias="passwordCurrent")


class UpdateMeRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    password: Optional[str] = None
    password_confirm: Optional[str] = Field(None, alias="passwordConfirm")


class AdminUserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    photo: Optional[str] = None
    role: Optional[Role] = None
    active: Optional[bool] = None


_get_all_users = factory.get_all("users", columns=USER_PUBLIC_FIELDS)
_get_user = factory.get_one("users", columns=USER_PUBLIC_FIELDS)
_update_user = factory.update_one(
    "users", ["name", "email", "photo", "role", "active"], columns=USER_PUBLIC_FIELDS
)
_delete_user = factory.delete_one("users")
_update_me = factory.update_one("users", ["name", "email"], columns=USER_PUBLIC_FIELDS)


# ============================================================================
# AUTHENTICATION
# ============================================================================

@router.post("/signup", status_code=201)
def signup(user: UserSignup, db: Session = Depends(get_db)):
    return auth.signup(db, user.name, user.email, user.password, photo=user.photo)


@router.post("/login")
def login(credentials: LoginRequest, db: Session = Depends(get_db)):
    return auth.login(db, credentials.email, credentials.password)


@router.post("/forgotPassword")
def forgot_password(body: ForgotPasswordRequest, request: Request, db: Session = Depends(get_db)):
    reset_url_base = f"{request.base_url}{settings.api_prefix.strip('/')}/users/resetPassword/"
    return auth.forgot_password(db, body.email, reset_url_base)


@router.patch("/resetPassword/{token}")
def reset_password(token: str, body: PasswordPair, db: Session = Depends(get_db)):
    return auth.reset_password(db, token, body.password)


@router.patch("/updateMyPassword")
def update_my_password(
    body: UpdatePasswordRequest,
    db: Session = Depends(get_db),
    current_user: Dict[str, Any] = Depends(protect),
):
    return auth.update_password(db, current_user, body.password_current, body.password)


# ============================================================================
# CURRENT USER
# ============================================================================

@router.get("/me")
def get_me(current_user: Dict[str, Any] = Depends(protect)):
    return {"status": "success", "data": {"user": public_user(current_user)}}


@router.patch("/me")
def update_me(
    body: UpdateMeRequest,
    db: Session = Depends(get_db),
    current_user: Dict[str, Any] = Depends(protect),
):
    """Update name and/or email. Anything else in the body is ignored."""
    if body.password or body.password_confirm:
        raise AppError(
            "This route is not for password updates. Please use /updateMyPassword.",
            400,
        )
    data = body.model_dump(exclude_unset=True)
    if data.get("email"):
        data["email"] = data["email"].lower()
    return _update_me(db, current_user["id"], data)


@router.delete("/me", status_code=204)
def delete_me(
    db: Session = Depends(get_db),
    current_user: Dict[str, Any] = Depends(protect),
):
    UserRepository(db).deactivate(current_user["id"])
    return Response(status_code=204)


# ============================================================================
# ADMINISTRATION
# ============================================================================

admin_only = Depends(restrict_to("admin"))


@router.get("", dependencies=[admin_only])
def get_all_users(request: Request, db: Session = Depends(get_db)):
    query = parse_query_string(request.query_params.multi_items())
    return _get_all_users(db, query, where={"active": True})


@router.post("", dependencies=[admin_only])
def create_user():
    return JSONResponse(
        status_code=500,
        content={
            "status": "error",
            "message": "This route is not defined! Please use /signup instead",
        },
    )


@router.get("/{id}", dependencies=[admin_only])
def get_user(id: int, db: Session = Depends(get_db)):
    return _get_user(db, id)


@router.patch("/{id}", dependencies=[admin_only])
def update_user(id: int, body: AdminUserUpdate, db: Session = Depends(get_db)):
    """Admin edit; passwords are never changed here."""
    return _update_user(db, id, body.model_dump(exclude_unset=True))


@router.delete("/{id}", status_code=204, dependencies=[admin_only])
def delete_user(id: int, db: Session = Depends(get_db)):
    _delete_user(db, id)
    return Response(status_code=204)
