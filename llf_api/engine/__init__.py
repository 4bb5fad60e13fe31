from .accounts import AuthWorkflow, LoginResult
from .collaborators import AuthSession, BlobStore, IdentityProvider, Upload
from .dashboard import DashboardOverview, DashboardService
from .errors import (
    Conflict,
    LlfError,
    NotFound,
    PendingApproval,
    PermissionDenied,
    ProfileNotFound,
    Result,
    StorageError,
    Unauthenticated,
    ValidationError,
)
from .inspections import InspectionLifecycleManager, LlfInput, ObservationInput
from .machines import MachineFilter, MachineLifecycleManager, MachineSpec
from .repository import InMemoryRepository, Repository

__all__ = [
    "AuthSession",
    "AuthWorkflow",
    "BlobStore",
    "Conflict",
    "DashboardOverview",
    "DashboardService",
    "IdentityProvider",
    "InMemoryRepository",
    "InspectionLifecycleManager",
    "LlfError",
    "LlfInput",
    "LoginResult",
    "MachineFilter",
    "MachineLifecycleManager",
    "MachineSpec",
    "NotFound",
    "ObservationInput",
    "PendingApproval",
    "PermissionDenied",
    "ProfileNotFound",
    "Repository",
    "Result",
    "StorageError",
    "Unauthenticated",
    "Upload",
    "ValidationError",
]
