from fastapi import Depends, Request

from llf_api.engine.entities import Principal, User
from llf_api.engine.errors import PendingApproval, Unauthenticated
from llf_api.engine.policy import is_active_account
from llf_api.services import Services, get_services


def bearer_token(request: Request) -> str:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise Unauthenticated("Missing bearer token")
    token = auth_header.replace("Bearer ", "", 1).strip()
    if not token:
        raise Unauthenticated("Missing bearer token")
    return token


def require_user(request: Request, services: Services = Depends(get_services)) -> User:
    token = bearer_token(request)
    session = services.identity.current_session(token)
    user = services.accounts.get_profile(session.user_id).unwrap()
    if not is_active_account(user):
        raise PendingApproval("Your account is pending approval")
    request.state.user = user
    request.state.token = token
    return user


def require_principal(user: User = Depends(require_user)) -> Principal:
    return Principal.from_user(user)
