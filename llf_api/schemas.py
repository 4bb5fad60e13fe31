import logging
from typing import Any, Dict, Optional, Type, TypeVar

from fastapi import UploadFile
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from llf_api.engine import BlobStore, LlfInput, ObservationInput, Upload
from llf_api.engine.entities import (
    AbnormalityStatus,
    Inspection,
    InspectionFrequency,
    InspectionStatus,
    Machine,
    MachineCategory,
    MachineSection,
    User,
    UserRole,
)
from llf_api.engine.errors import StorageError, ValidationError
from llf_api.engine.policy import describe_role

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class RegisterIn(BaseModel):
    email: str
    password: str
    name: str
    role: UserRole = UserRole.WORKMAN
    department: str = ""
    section: str = ""
    area: str = ""


class LoginIn(BaseModel):
    email: str
    password: str


class PasswordResetIn(BaseModel):
    email: str


class PasswordResetConfirmIn(BaseModel):
    token: str
    new_password: str


class ApprovalIn(BaseModel):
    approved: bool = True


class MachineIn(BaseModel):
    name: str
    category: MachineCategory = MachineCategory.OTHER
    section: MachineSection = MachineSection.OTHER
    sub_category: str = ""
    inspection_frequency: InspectionFrequency = InspectionFrequency.WEEKLY


class MachineUpdateIn(MachineIn):
    is_active: Optional[bool] = None
    expected_version: Optional[int] = None


class ObservationIn(BaseModel):
    status: InspectionStatus = InspectionStatus.OK
    notes: str = ""


class InspectionUpdateIn(BaseModel):
    look: ObservationIn = Field(default_factory=ObservationIn)
    listen: ObservationIn = Field(default_factory=ObservationIn)
    feel: ObservationIn = Field(default_factory=ObservationIn)
    is_draft: bool = False
    expected_version: Optional[int] = None


class InspectionIn(InspectionUpdateIn):
    machine_id: str


class AbnormalityIn(BaseModel):
    status: AbnormalityStatus
    resolution_notes: str = ""
    expected_version: Optional[int] = None


def parse_payload(model: Type[ModelT], raw: Optional[str]) -> ModelT:
    try:
        return model.model_validate_json(raw or "{}")
    except PydanticValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ())) or "payload"
        raise ValidationError(f"Invalid payload field {location}: {first.get('msg', 'invalid')}") from exc


def read_upload(upload: Optional[UploadFile]) -> Optional[Upload]:
    if upload is None:
        return None
    data = upload.file.read()
    if not data:
        return None
    return Upload(
        data=data,
        content_type=upload.content_type or "application/octet-stream",
        filename=upload.filename or "",
    )


def llf_input(payload: InspectionUpdateIn, **uploads: Optional[UploadFile]) -> LlfInput:
    observations = {}
    for dimension in ("look", "listen", "feel"):
        given = getattr(payload, dimension)
        observations[dimension] = ObservationInput(
            status=given.status,
            notes=given.notes,
            upload=read_upload(uploads.get(dimension)),
        )
    return LlfInput(**observations)


def _url(blob_store: BlobStore, reference: Optional[str]) -> Optional[str]:
    if not reference:
        return None
    try:
        return blob_store.resolve_url(reference)
    except StorageError as exc:
        logger.warning("Could not resolve %s: %s", reference, exc.message)
        return None


def user_out(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "department": user.department,
        "section": user.section,
        "area": user.area,
        "is_approved": user.is_approved,
        "created_at": user.created_at,
    }


def me_out(user: User) -> Dict[str, Any]:
    return {**user_out(user), "access": describe_role(user.role)}


def machine_out(machine: Machine, blob_store: BlobStore) -> Dict[str, Any]:
    return {
        "id": machine.id,
        "name": machine.name,
        "category": machine.category,
        "section": machine.section,
        "sub_category": machine.sub_category,
        "image_ref": machine.image_ref,
        "image_url": _url(blob_store, machine.image_ref),
        "inspection_frequency": machine.inspection_frequency,
        "last_inspection": machine.last_inspection,
        "next_inspection_due": machine.next_inspection_due,
        "is_inspection_due": machine.is_inspection_due(),
        "days_until_next_inspection": machine.days_until_next_inspection(),
        "created_by": machine.created_by,
        "created_at": machine.created_at,
        "is_active": machine.is_active,
        "version": machine.version,
    }


def inspection_out(inspection: Inspection, blob_store: BlobStore) -> Dict[str, Any]:
    observations = {}
    for dimension in ("look", "listen", "feel"):
        observation = inspection.observation(dimension)
        observations[dimension] = {
            "status": observation.status,
            "notes": observation.notes,
            "attachment": observation.attachment,
            "attachment_url": _url(blob_store, observation.attachment),
        }
    return {
        "id": inspection.id,
        "machine_id": inspection.machine_id,
        "inspected_by": inspection.inspected_by,
        "inspection_date": inspection.inspection_date,
        **observations,
        "has_abnormality": inspection.has_abnormality,
        "abnormality_status": inspection.abnormality_status,
        "abnormality_closed_by": inspection.abnormality_closed_by,
        "abnormality_closed_date": inspection.abnormality_closed_date,
        "abnormality_resolution_notes": inspection.abnormality_resolution_notes,
        "abnormality_resolution_attachment": inspection.abnormality_resolution_attachment,
        "abnormality_resolution_url": _url(blob_store, inspection.abnormality_resolution_attachment),
        "requires_engineer_attention": inspection.requires_engineer_attention(),
        "is_draft": inspection.is_draft,
        "last_updated": inspection.last_updated,
        "version": inspection.version,
    }
