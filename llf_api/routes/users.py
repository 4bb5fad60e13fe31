from fastapi import APIRouter, Depends

from llf_api.engine.policy import APPROVE_ENGINEERS
from llf_api.rbac import require_capability
from llf_api.schemas import ApprovalIn, user_out
from llf_api.services import Services, get_services

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/pending-engineers")
def pending_engineers(
    user=Depends(require_capability(APPROVE_ENGINEERS)),
    services: Services = Depends(get_services),
):
    return [user_out(item) for item in services.accounts.list_pending_engineers(user.id).unwrap()]


@router.post("/{user_id}/approval")
def set_approval(
    user_id: str,
    payload: ApprovalIn,
    user=Depends(require_capability(APPROVE_ENGINEERS)),
    services: Services = Depends(get_services),
):
    return user_out(services.accounts.approve_engineer(user.id, user_id, payload.approved).unwrap())
