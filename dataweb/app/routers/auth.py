from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session as DBSession

from dataweb.app.database import get_db
from dataweb.app.dependencies.rate_limit import auth_rate_limit
from dataweb.app.schemas.auth import AuthRequest, AuthResponse, PublicUser
from dataweb.app.services.auth_service import authenticate_user, register_user

router = APIRouter(dependencies=[Depends(auth_rate_limit)])


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(body: AuthRequest, db: DBSession = Depends(get_db)):
    user, token = register_user(db, body.username, body.password)
    return AuthResponse(
        message="User registered successfully",
        token=token,
        user=PublicUser(id=user.id, username=user.username),
    )


@router.post("/login", response_model=AuthResponse)
def login(body: AuthRequest, db: DBSession = Depends(get_db)):
    user, token = authenticate_user(db, body.username, body.password)
    return AuthResponse(
        message="Login successful",
        token=token,
        user=PublicUser(id=user.id, username=user.username),
    )
