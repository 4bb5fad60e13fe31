from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status

from llf_api.auth import require_principal, require_user
from llf_api.engine.errors import ValidationError
from llf_api.schemas import (
    AbnormalityIn,
    InspectionIn,
    InspectionUpdateIn,
    inspection_out,
    llf_input,
    parse_payload,
    read_upload,
)
from llf_api.services import Services, get_services

router = APIRouter(prefix="/inspections", tags=["inspections"])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_inspection(
    payload: str = Form(...),
    look_image: Optional[UploadFile] = File(None),
    listen_image: Optional[UploadFile] = File(None),
    feel_image: Optional[UploadFile] = File(None),
    user=Depends(require_user),
    services: Services = Depends(get_services),
):
    data = parse_payload(InspectionIn, payload)
    observations = llf_input(data, look=look_image, listen=listen_image, feel=feel_image)
    inspection = services.inspections.create(data.machine_id, user.id, observations, data.is_draft).unwrap()
    return inspection_out(inspection, services.blob_store)


@router.get("")
def list_inspections(
    machine_id: Optional[str] = None,
    section: Optional[str] = None,
    drafts: bool = False,
    open_abnormalities: bool = False,
    user=Depends(require_user),
    services: Services = Depends(get_services),
):
    selected = [name for name, value in (("machine_id", machine_id), ("section", section)) if value]
    selected += [name for name, flag in (("drafts", drafts), ("open_abnormalities", open_abnormalities)) if flag]
    if len(selected) > 1:
        raise ValidationError(f"Choose one listing, got: {', '.join(selected)}")
    if machine_id:
        result = services.inspections.for_machine(machine_id)
    elif section:
        result = services.inspections.by_section(section)
    elif drafts:
        result = services.inspections.drafts_for(user.id)
    elif open_abnormalities:
        result = services.inspections.open_abnormalities()
    else:
        result = services.inspections.list_all()
    return [inspection_out(item, services.blob_store) for item in result.unwrap()]


@router.get("/search")
def search_inspections(q: str = "", user=Depends(require_user), services: Services = Depends(get_services)):
    return [inspection_out(item, services.blob_store) for item in services.inspections.search(q).unwrap()]


@router.get("/{inspection_id}")
def get_inspection(inspection_id: str, user=Depends(require_user), services: Services = Depends(get_services)):
    return inspection_out(services.inspections.get(inspection_id).unwrap(), services.blob_store)


@router.put("/{inspection_id}")
def update_inspection(
    inspection_id: str,
    payload: str = Form(...),
    look_image: Optional[UploadFile] = File(None),
    listen_image: Optional[UploadFile] = File(None),
    feel_image: Optional[UploadFile] = File(None),
    user=Depends(require_user),
    services: Services = Depends(get_services),
):
    data = parse_payload(InspectionUpdateIn, payload)
    observations = llf_input(data, look=look_image, listen=listen_image, feel=feel_image)
    inspection = services.inspections.update(
        inspection_id,
        observations,
        data.is_draft,
        expected_version=data.expected_version,
    ).unwrap()
    return inspection_out(inspection, services.blob_store)


@router.delete("/{inspection_id}")
def delete_inspection(inspection_id: str, user=Depends(require_user), services: Services = Depends(get_services)):
    services.inspections.delete(inspection_id).unwrap()
    return {"id": inspection_id, "deleted": True}


@router.post("/{inspection_id}/abnormality")
def update_abnormality(
    inspection_id: str,
    payload: str = Form(...),
    resolution_image: Optional[UploadFile] = File(None),
    principal=Depends(require_principal),
    services: Services = Depends(get_services),
):
    data = parse_payload(AbnormalityIn, payload)
    inspection = services.inspections.update_abnormality_status(
        inspection_id,
        data.status,
        principal,
        data.resolution_notes,
        read_upload(resolution_image),
        expected_version=data.expected_version,
    ).unwrap()
    return inspection_out(inspection, services.blob_store)
