from fastapi import APIRouter, Depends

from llf_api.auth import require_user
from llf_api.schemas import me_out

router = APIRouter(prefix="/me", tags=["me"])


@router.get("")
def whoami(user=Depends(require_user)):
    return me_out(user)
