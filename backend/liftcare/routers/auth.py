from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from ..auth import bearer_token, get_current_user
from ..database import get_db
from ..models import User
from ..schemas import (
    AuthResponse,
    ChangePasswordRequest,
    Envelope,
    LoginRequest,
    ProfileUpdateRequest,
    RegisterRequest,
    UserResponse,
)
from ..services import accounts

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login", response_model=Envelope[AuthResponse])
def login(payload: LoginRequest, db: Session = Depends(get_db)) -> Envelope[AuthResponse]:
    user, token = accounts.login(db, payload.email, payload.password)
    return Envelope[AuthResponse](
        data=AuthResponse(user=UserResponse.model_validate(user), token=token),
        message="Login successful",
    )


@router.post("/register", response_model=Envelope[AuthResponse], status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, db: Session = Depends(get_db)) -> Envelope[AuthResponse]:
    user, token = accounts.register(db, payload)
    return Envelope[AuthResponse](
        data=AuthResponse(user=UserResponse.model_validate(user), token=token),
        message="Registration successful. Your account is pending approval.",
    )


@router.post("/logout", response_model=Envelope[None])
def logout(request: Request, user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> Envelope[None]:
    accounts.logout(db, bearer_token(request))
    return Envelope[None](message="Logged out")


@router.get("/profile", response_model=Envelope[UserResponse])
def get_profile(user: User = Depends(get_current_user)) -> Envelope[UserResponse]:
    return Envelope[UserResponse](data=UserResponse.model_validate(user))


@router.put("/profile", response_model=Envelope[UserResponse])
def update_profile(
    payload: ProfileUpdateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Envelope[UserResponse]:
    user = accounts.update_profile(db, user, payload)
    return Envelope[UserResponse](data=UserResponse.model_validate(user), message="Profile updated")


@router.post("/change-password", response_model=Envelope[None])
def change_password(
    payload: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Envelope[None]:
    accounts.change_password(db, user, payload.current_password, payload.new_password)
    return Envelope[None](message="Password updated")
