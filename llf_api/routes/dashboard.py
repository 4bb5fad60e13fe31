from fastapi import APIRouter, Depends

from llf_api.auth import require_user
from llf_api.schemas import inspection_out, machine_out, user_out
from llf_api.services import Services, get_services

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("")
def overview(user=Depends(require_user), services: Services = Depends(get_services)):
    data = services.dashboard.load_overview(user.id).unwrap()
    return {
        "user": user_out(data.user),
        "machines_due": [machine_out(machine, services.blob_store) for machine in data.machines_due],
        "abnormalities": [inspection_out(item, services.blob_store) for item in data.abnormalities],
    }
