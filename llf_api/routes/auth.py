from fastapi import APIRouter, Depends, Request, status

from llf_api.auth import bearer_token
from llf_api.schemas import LoginIn, PasswordResetConfirmIn, PasswordResetIn, RegisterIn, user_out
from llf_api.services import Services, get_services

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(payload: RegisterIn, services: Services = Depends(get_services)):
    user = services.accounts.register(
        payload.email,
        payload.password,
        payload.name,
        payload.role,
        payload.department,
        payload.section,
        payload.area,
    ).unwrap()
    return user_out(user)


@router.post("/login")
def login(payload: LoginIn, services: Services = Depends(get_services)):
    result = services.accounts.login(payload.email, payload.password).unwrap()
    return {
        "access_token": result.session.token,
        "token_type": "bearer",
        "expires_at": result.session.expires_at,
        "user": user_out(result.user),
    }


@router.post("/logout")
def logout(request: Request, services: Services = Depends(get_services)):
    services.accounts.logout(bearer_token(request)).unwrap()
    return {"status": "signed_out"}


@router.post("/password-reset")
def password_reset(payload: PasswordResetIn, services: Services = Depends(get_services)):
    services.accounts.reset_password(payload.email).unwrap()
    return {"status": "sent"}


@router.post("/password-reset/confirm")
def password_reset_confirm(payload: PasswordResetConfirmIn, services: Services = Depends(get_services)):
    services.accounts.confirm_password_reset(payload.token, payload.new_password).unwrap()
    return {"status": "updated"}
