from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, List, Optional

from .collaborators import BlobStore, Upload, discard_blob
from .entities import (
    MACHINES,
    InspectionFrequency,
    Machine,
    MachineCategory,
    MachineSection,
    utcnow,
)
from .errors import Conflict, NotFound, ValidationError, service_call
from .repository import Repository, asc, where
from .scheduling import compute_next_due

logger = logging.getLogger(__name__)

MACHINE_IMAGE_FOLDER = "machine_images"
SCHEDULE_WRITE_ATTEMPTS = 3


@dataclass(frozen=True)
class MachineSpec:
    name: str
    category: MachineCategory = MachineCategory.OTHER
    section: MachineSection = MachineSection.OTHER
    sub_category: str = ""
    inspection_frequency: InspectionFrequency = InspectionFrequency.WEEKLY
    image: Optional[Upload] = None
    is_active: Optional[bool] = None


@dataclass(frozen=True)
class MachineFilter:
    kind: str = "all"
    category: Optional[MachineCategory] = None
    section: Optional[MachineSection] = None

    @classmethod
    def all(cls) -> "MachineFilter":
        return cls()

    @classmethod
    def by_category(cls, category: MachineCategory) -> "MachineFilter":
        return cls(kind="by_category", category=MachineCategory(category))

    @classmethod
    def by_section(cls, section: MachineSection) -> "MachineFilter":
        return cls(kind="by_section", section=MachineSection(section))

    @classmethod
    def due_for_inspection(cls) -> "MachineFilter":
        return cls(kind="due_for_inspection")


def _coerce(enum_cls, value, label: str):
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown {label}: {value}") from exc


def _upload_path(folder: str) -> str:
    return f"{folder}/{uuid.uuid4()}"


class MachineLifecycleManager:
    def __init__(self, *, repository: Repository, blob_store: BlobStore, clock: Callable[[], datetime] = utcnow):
        self.repository = repository
        self.blob_store = blob_store
        self.clock = clock

    def _load(self, machine_id: str) -> Machine:
        document = self.repository.get(MACHINES, machine_id) if machine_id else None
        if document is None:
            raise NotFound(f"Machine not found: {machine_id}")
        return Machine.from_document(document)

    def _validated_fields(self, spec: MachineSpec) -> dict:
        name = str(spec.name or "").strip()
        if not name:
            raise ValidationError("Machine name is required")
        return {
            "name": name,
            "category": _coerce(MachineCategory, spec.category, "machine category"),
            "section": _coerce(MachineSection, spec.section, "machine section"),
            "sub_category": str(spec.sub_category or "").strip(),
            "inspection_frequency": _coerce(InspectionFrequency, spec.inspection_frequency, "inspection frequency"),
        }

    def _store(self, machine: Machine, *, expected_version: Optional[int], new_image: Optional[str]) -> None:
        try:
            self.repository.put(MACHINES, machine.id, machine.to_document(), expected_version=expected_version)
        except Exception:
            discard_blob(self.blob_store, new_image)
            raise

    @service_call
    def create(self, spec: MachineSpec, creator_id: str) -> Machine:
        values = self._validated_fields(spec)
        if spec.image is None or not spec.image.data:
            raise ValidationError("Machine image is required")
        now = self.clock()
        image_ref = self.blob_store.upload(_upload_path(MACHINE_IMAGE_FOLDER), spec.image.data, spec.image.content_type)
        machine = Machine(
            id=str(uuid.uuid4()),
            image_ref=image_ref,
            last_inspection=None,
            next_inspection_due=compute_next_due(now, values["inspection_frequency"]),
            created_by=creator_id,
            created_at=now,
            is_active=True,
            version=1,
            **values,
        )
        self._store(machine, expected_version=None, new_image=image_ref)
        logger.info("Created machine %s (%s) by %s", machine.id, machine.name, creator_id)
        return machine

    @service_call
    def get(self, machine_id: str) -> Machine:
        return self._load(machine_id)

    @service_call
    def update(self, machine_id: str, spec: MachineSpec, *, expected_version: Optional[int] = None) -> Machine:
        current = self._load(machine_id)
        if expected_version is not None and expected_version != current.version:
            raise Conflict(f"Machine {machine_id} has changed since it was read")
        values = self._validated_fields(spec)
        new_image = None
        if spec.image is not None and spec.image.data:
            new_image = self.blob_store.upload(
                _upload_path(MACHINE_IMAGE_FOLDER), spec.image.data, spec.image.content_type
            )
        updated = replace(
            current,
            image_ref=new_image or current.image_ref,
            is_active=current.is_active if spec.is_active is None else bool(spec.is_active),
            version=current.version + 1,
            **values,
        )
        self._store(updated, expected_version=current.version, new_image=new_image)
        if new_image and current.image_ref:
            discard_blob(self.blob_store, current.image_ref)
        return updated

    @service_call
    def delete(self, machine_id: str) -> None:
        machine = self._load(machine_id)
        discard_blob(self.blob_store, machine.image_ref)
        self.repository.delete(MACHINES, machine.id)
        logger.info("Deleted machine %s", machine.id)

    def _query(self, criteria: MachineFilter) -> List[Machine]:
        active = where("is_active", "eq", True)
        if criteria.kind == "all":
            rows = self.repository.query(MACHINES, [active], [asc("name")])
        elif criteria.kind == "by_category":
            rows = self.repository.query(
                MACHINES, [active, where("category", "eq", criteria.category.value)], [asc("name")]
            )
        elif criteria.kind == "by_section":
            rows = self.repository.query(
                MACHINES, [active, where("section", "eq", criteria.section.value)], [asc("name")]
            )
        elif criteria.kind == "due_for_inspection":
            # never-scheduled machines come first, then overdue ones by due date
            rows = self.repository.query(MACHINES, [active, where("next_inspection_due", "eq", None)])
            rows += self.repository.query(
                MACHINES,
                [active, where("next_inspection_due", "le", self.clock())],
                [asc("next_inspection_due")],
            )
        else:
            raise ValidationError(f"Unknown machine filter: {criteria.kind}")
        return [Machine.from_document(row) for row in rows]

    @service_call
    def list(self, criteria: Optional[MachineFilter] = None) -> List[Machine]:
        return self._query(criteria or MachineFilter.all())

    @service_call
    def search(self, query: str) -> List[Machine]:
        machines = self._query(MachineFilter.all())
        needle = str(query or "").strip().lower()
        if not needle:
            return machines
        return [
            machine
            for machine in machines
            if needle in machine.name.lower() or needle in machine.id.lower() or needle in machine.sub_category.lower()
        ]

    def _reschedule(self, machine_id: str, schedule: Callable[[Machine], Optional[Machine]]) -> Machine:
        """Apply ``schedule`` to a fresh read, re-reading when the version moved underneath."""
        for attempt in range(1, SCHEDULE_WRITE_ATTEMPTS + 1):
            current = self._load(machine_id)
            updated = schedule(current)
            if updated is None:
                return current
            updated = replace(updated, version=current.version + 1)
            try:
                self.repository.put(MACHINES, updated.id, updated.to_document(), expected_version=current.version)
            except Conflict:
                logger.info("Machine %s changed while rescheduling (attempt %d)", machine_id, attempt)
                continue
            return updated
        raise Conflict(f"Machine {machine_id} kept changing while its schedule was updated")

    @service_call
    def record_inspection_completed(self, machine_id: str, completed_at: datetime) -> Machine:
        updated = self._reschedule(
            machine_id,
            lambda current: replace(
                current,
                last_inspection=completed_at,
                next_inspection_due=compute_next_due(completed_at, current.inspection_frequency),
            ),
        )
        logger.info("Machine %s next inspection due %s", updated.id, updated.next_inspection_due.isoformat())
        return updated

    @service_call
    def revert_inspection_completed(self, previous: Machine, completed_at: datetime) -> Machine:
        """Put back the schedule ``previous`` had, unless a later completion replaced ours."""

        def _restore(current: Machine) -> Optional[Machine]:
            if current.last_inspection != completed_at:
                return None
            return replace(
                current,
                last_inspection=previous.last_inspection,
                next_inspection_due=previous.next_inspection_due,
            )

        restored = self._reschedule(previous.id, _restore)
        logger.info("Machine %s schedule after revert: due %s", restored.id, restored.next_inspection_due)
        return restored
