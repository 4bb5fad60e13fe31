from fastapi import Depends

from llf_api.auth import require_user
from llf_api.engine.entities import User
from llf_api.engine.errors import PermissionDenied
from llf_api.engine.policy import CAPABILITIES, has_capability

_CAPABILITY_NAMES = {item.key: item.name for item in CAPABILITIES}


def require_capability(*capabilities: str):
    def _check(user: User = Depends(require_user)) -> User:
        missing = [capability for capability in capabilities if not has_capability(user, capability)]
        if missing:
            names = ", ".join(_CAPABILITY_NAMES.get(capability, capability) for capability in missing)
            raise PermissionDenied(f"Missing required capability: {names}")
        return user

    return _check
