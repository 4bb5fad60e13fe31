from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status

from llf_api.auth import require_user
from llf_api.engine import MachineFilter, MachineSpec
from llf_api.engine.entities import MachineCategory, MachineSection
from llf_api.engine.errors import ValidationError
from llf_api.engine.policy import MANAGE_MACHINES
from llf_api.rbac import require_capability
from llf_api.schemas import MachineIn, MachineUpdateIn, machine_out, parse_payload, read_upload
from llf_api.services import Services, get_services

router = APIRouter(prefix="/machines", tags=["machines"])


def _spec(payload: MachineIn, image: Optional[UploadFile], is_active: Optional[bool] = None) -> MachineSpec:
    return MachineSpec(
        name=payload.name,
        category=payload.category,
        section=payload.section,
        sub_category=payload.sub_category,
        inspection_frequency=payload.inspection_frequency,
        image=read_upload(image),
        is_active=is_active,
    )


@router.post("", status_code=status.HTTP_201_CREATED)
def create_machine(
    payload: str = Form(...),
    image: Optional[UploadFile] = File(None),
    user=Depends(require_capability(MANAGE_MACHINES)),
    services: Services = Depends(get_services),
):
    data = parse_payload(MachineIn, payload)
    machine = services.machines.create(_spec(data, image), user.id).unwrap()
    return machine_out(machine, services.blob_store)


@router.get("")
def list_machines(
    category: Optional[MachineCategory] = None,
    section: Optional[MachineSection] = None,
    due: bool = False,
    user=Depends(require_user),
    services: Services = Depends(get_services),
):
    chosen = [value for value in (category, section) if value is not None]
    if len(chosen) + int(due) > 1:
        raise ValidationError("Use only one of category, section or due")
    if due:
        criteria = MachineFilter.due_for_inspection()
    elif category is not None:
        criteria = MachineFilter.by_category(category)
    elif section is not None:
        criteria = MachineFilter.by_section(section)
    else:
        criteria = MachineFilter.all()
    return [machine_out(machine, services.blob_store) for machine in services.machines.list(criteria).unwrap()]


@router.get("/search")
def search_machines(q: str = "", user=Depends(require_user), services: Services = Depends(get_services)):
    return [machine_out(machine, services.blob_store) for machine in services.machines.search(q).unwrap()]


@router.get("/{machine_id}")
def get_machine(machine_id: str, user=Depends(require_user), services: Services = Depends(get_services)):
    return machine_out(services.machines.get(machine_id).unwrap(), services.blob_store)


@router.put("/{machine_id}")
def update_machine(
    machine_id: str,
    payload: str = Form(...),
    image: Optional[UploadFile] = File(None),
    user=Depends(require_capability(MANAGE_MACHINES)),
    services: Services = Depends(get_services),
):
    data = parse_payload(MachineUpdateIn, payload)
    machine = services.machines.update(
        machine_id,
        _spec(data, image, is_active=data.is_active),
        expected_version=data.expected_version,
    ).unwrap()
    return machine_out(machine, services.blob_store)


@router.delete("/{machine_id}")
def delete_machine(
    machine_id: str,
    user=Depends(require_capability(MANAGE_MACHINES)),
    services: Services = Depends(get_services),
):
    services.machines.delete(machine_id).unwrap()
    return {"id": machine_id, "deleted": True}
