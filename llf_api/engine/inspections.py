from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Dict, List, Optional, Union

from .collaborators import BlobStore, Upload, discard_blob
from .entities import (
    ABNORMALITY_ORDER,
    INSPECTIONS,
    LLF_DIMENSIONS,
    MACHINES,
    AbnormalityStatus,
    Inspection,
    InspectionStatus,
    Machine,
    MachineSection,
    Observation,
    Principal,
    utcnow,
)
from .errors import Conflict, NotFound, PermissionDenied, ValidationError, service_call
from .machines import MachineFilter, MachineLifecycleManager
from .policy import can_close_abnormalities
from .repository import Repository, desc, where

logger = logging.getLogger(__name__)

INSPECTION_IMAGE_FOLDER = "inspection_images"
RESOLUTION_IMAGE_FOLDER = "resolution_images"


@dataclass(frozen=True)
class ObservationInput:
    status: InspectionStatus = InspectionStatus.OK
    notes: str = ""
    upload: Optional[Upload] = None


@dataclass(frozen=True)
class LlfInput:
    look: ObservationInput = field(default_factory=ObservationInput)
    listen: ObservationInput = field(default_factory=ObservationInput)
    feel: ObservationInput = field(default_factory=ObservationInput)

    def observation(self, dimension: str) -> ObservationInput:
        return getattr(self, dimension)


def _status(value) -> InspectionStatus:
    try:
        return InspectionStatus(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown inspection status: {value}") from exc


def _newest_first(inspections: List[Inspection]) -> List[Inspection]:
    rows = sorted(inspections, key=lambda item: item.id)
    rows.sort(key=lambda item: item.inspection_date, reverse=True)
    return rows


class InspectionLifecycleManager:
    def __init__(
        self,
        *,
        repository: Repository,
        blob_store: BlobStore,
        machines: MachineLifecycleManager,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repository = repository
        self.blob_store = blob_store
        self.machines = machines
        self.clock = clock

    def _load(self, inspection_id: str) -> Inspection:
        document = self.repository.get(INSPECTIONS, inspection_id) if inspection_id else None
        if document is None:
            raise NotFound(f"Inspection not found: {inspection_id}")
        return Inspection.from_document(document)

    def _upload(self, folder: str, upload: Upload) -> str:
        return self.blob_store.upload(f"{folder}/{uuid.uuid4()}", upload.data, upload.content_type)

    def _upload_all(self, observations: LlfInput) -> Dict[str, str]:
        """Upload every provided attachment or none of them."""
        uploaded: Dict[str, str] = {}
        try:
            for dimension in LLF_DIMENSIONS:
                upload = observations.observation(dimension).upload
                if upload is not None and upload.data:
                    uploaded[dimension] = self._upload(INSPECTION_IMAGE_FOLDER, upload)
        except Exception:
            for reference in uploaded.values():
                discard_blob(self.blob_store, reference)
            raise
        return uploaded

    def _store(self, inspection: Inspection, *, expected_version: Optional[int], new_refs) -> None:
        try:
            self.repository.put(
                INSPECTIONS, inspection.id, inspection.to_document(), expected_version=expected_version
            )
        except Exception:
            for reference in new_refs:
                discard_blob(self.blob_store, reference)
            raise

    def _store_final(
        self,
        inspection: Inspection,
        machine: Machine,
        completed_at: datetime,
        *,
        expected_version: Optional[int],
        new_refs,
    ) -> None:
        """Reschedule the machine, then write the final record.

        A failed reschedule leaves nothing written, so the whole call can be
        retried. A failed record write puts the previous schedule back.
        """
        new_refs = list(new_refs)
        rescheduled = self.machines.record_inspection_completed(machine.id, completed_at)
        if not rescheduled.ok:
            for reference in new_refs:
                discard_blob(self.blob_store, reference)
            raise rescheduled.error
        try:
            self._store(inspection, expected_version=expected_version, new_refs=new_refs)
        except Exception:
            reverted = self.machines.revert_inspection_completed(machine, completed_at)
            if not reverted.ok:
                logger.error(
                    "Machine %s keeps schedule from unsaved inspection %s: %s",
                    machine.id,
                    inspection.id,
                    reverted.error.message,
                )
            raise

    def _check_version(self, current: Inspection, expected_version: Optional[int]) -> None:
        if expected_version is not None and expected_version != current.version:
            raise Conflict(f"Inspection {current.id} has changed since it was read")

    @service_call
    def create(self, machine_id: str, user_id: str, observations: LlfInput, is_draft: bool = False) -> Inspection:
        machine = self.machines.get(machine_id).unwrap()
        statuses = {dimension: _status(observations.observation(dimension).status) for dimension in LLF_DIMENSIONS}
        uploaded = self._upload_all(observations)
        now = self.clock()
        built = {
            dimension: Observation(
                status=statuses[dimension],
                notes=str(observations.observation(dimension).notes or ""),
                attachment=uploaded.get(dimension),
            )
            for dimension in LLF_DIMENSIONS
        }
        inspection = Inspection(
            id=str(uuid.uuid4()),
            machine_id=machine_id,
            inspected_by=user_id,
            inspection_date=now,
            is_draft=bool(is_draft),
            last_updated=now,
            version=1,
            **built,
        )
        has_abnormality = inspection.has_any_abnormality()
        inspection = replace(
            inspection,
            has_abnormality=has_abnormality,
            abnormality_status=AbnormalityStatus.OPEN if has_abnormality else AbnormalityStatus.CLOSED,
        )
        if inspection.is_draft:
            self._store(inspection, expected_version=None, new_refs=uploaded.values())
        else:
            self._store_final(
                inspection, machine, inspection.inspection_date, expected_version=None, new_refs=uploaded.values()
            )
        logger.info(
            "Recorded %s inspection %s for machine %s (abnormal=%s)",
            "draft" if inspection.is_draft else "final",
            inspection.id,
            machine_id,
            has_abnormality,
        )
        return inspection

    @service_call
    def update(
        self,
        inspection_id: str,
        observations: LlfInput,
        is_draft: bool,
        *,
        expected_version: Optional[int] = None,
    ) -> Inspection:
        """Edit observations and optionally finalize a draft.

        Clearing every NOT_OK finding closes the abnormality outright (no
        resolver stamps) instead of keeping its previous status, so a record
        without an abnormality is never left OPEN, IN_PROGRESS or RESOLVED.
        """
        current = self._load(inspection_id)
        self._check_version(current, expected_version)
        if current.is_complete() and is_draft:
            raise PermissionDenied("A completed inspection cannot be returned to draft")
        finalized = current.is_draft and not is_draft
        machine = self.machines.get(current.machine_id).unwrap() if finalized else None
        statuses = {dimension: _status(observations.observation(dimension).status) for dimension in LLF_DIMENSIONS}
        uploaded = self._upload_all(observations)
        now = self.clock()
        built = {
            dimension: Observation(
                status=statuses[dimension],
                notes=str(observations.observation(dimension).notes or ""),
                attachment=uploaded.get(dimension) or current.observation(dimension).attachment,
            )
            for dimension in LLF_DIMENSIONS
        }
        updated = current.with_observations(**built)
        has_abnormality = updated.has_any_abnormality()
        if has_abnormality and not current.has_abnormality:
            abnormality_status = AbnormalityStatus.OPEN
        elif has_abnormality:
            abnormality_status = current.abnormality_status
        else:
            abnormality_status = AbnormalityStatus.CLOSED
        updated = replace(
            updated,
            has_abnormality=has_abnormality,
            abnormality_status=abnormality_status,
            is_draft=bool(is_draft),
            last_updated=now,
            version=current.version + 1,
        )
        if finalized:
            self._store_final(updated, machine, now, expected_version=current.version, new_refs=uploaded.values())
            logger.info("Inspection %s finalized", updated.id)
        else:
            self._store(updated, expected_version=current.version, new_refs=uploaded.values())
        for dimension in uploaded:
            discard_blob(self.blob_store, current.observation(dimension).attachment)
        return updated

    @service_call
    def update_abnormality_status(
        self,
        inspection_id: str,
        new_status: AbnormalityStatus,
        actor: Principal,
        resolution_notes: str = "",
        resolution_attachment: Optional[Upload] = None,
        *,
        expected_version: Optional[int] = None,
    ) -> Inspection:
        if not can_close_abnormalities(actor):
            raise PermissionDenied("Only engineers and management can update abnormalities")
        try:
            new_status = AbnormalityStatus(new_status)
        except ValueError as exc:
            raise ValidationError(f"Unknown abnormality status: {new_status}") from exc
        current = self._load(inspection_id)
        self._check_version(current, expected_version)
        if current.is_draft:
            raise ValidationError("Finish the inspection before updating its abnormality")
        if not current.has_abnormality:
            raise ValidationError("Inspection has no abnormality to update")
        if current.abnormality_status == AbnormalityStatus.CLOSED:
            raise PermissionDenied("A closed abnormality cannot be reopened")
        new_ref = None
        if resolution_attachment is not None and resolution_attachment.data:
            new_ref = self._upload(RESOLUTION_IMAGE_FOLDER, resolution_attachment)
        now = self.clock()
        closing = new_status == AbnormalityStatus.CLOSED
        updated = replace(
            current,
            abnormality_status=new_status,
            abnormality_closed_by=actor.user_id if closing else current.abnormality_closed_by,
            abnormality_closed_date=now if closing else current.abnormality_closed_date,
            abnormality_resolution_notes=str(resolution_notes or ""),
            abnormality_resolution_attachment=new_ref or current.abnormality_resolution_attachment,
            last_updated=now,
            version=current.version + 1,
        )
        self._store(updated, expected_version=current.version, new_refs=[new_ref] if new_ref else [])
        if new_ref:
            discard_blob(self.blob_store, current.abnormality_resolution_attachment)
        logger.info(
            "Abnormality on inspection %s moved %s -> %s by %s",
            current.id,
            current.abnormality_status.value,
            new_status.value,
            actor.user_id,
        )
        return updated

    @service_call
    def delete(self, inspection_id: str) -> None:
        current = self._load(inspection_id)
        if current.is_complete():
            raise PermissionDenied("Cannot delete a completed inspection")
        for reference in current.attachments().values():
            discard_blob(self.blob_store, reference)
        discard_blob(self.blob_store, current.abnormality_resolution_attachment)
        self.repository.delete(INSPECTIONS, current.id)
        logger.info("Deleted draft inspection %s", current.id)

    @service_call
    def get(self, inspection_id: str) -> Inspection:
        return self._load(inspection_id)

    def _final_for_machine(self, machine_id: str) -> List[Inspection]:
        rows = self.repository.query(
            INSPECTIONS,
            [where("machine_id", "eq", machine_id), where("is_draft", "eq", False)],
            [desc("inspection_date")],
        )
        return [Inspection.from_document(row) for row in rows]

    @service_call
    def for_machine(self, machine_id: str) -> List[Inspection]:
        return self._final_for_machine(machine_id)

    @service_call
    def drafts_for(self, user_id: str) -> List[Inspection]:
        rows = self.repository.query(
            INSPECTIONS,
            [where("inspected_by", "eq", user_id), where("is_draft", "eq", True)],
            [desc("last_updated")],
        )
        return [Inspection.from_document(row) for row in rows]

    @service_call
    def open_abnormalities(self) -> List[Inspection]:
        rows = self.repository.query(
            INSPECTIONS,
            [
                where("has_abnormality", "eq", True),
                where("is_draft", "eq", False),
                where("abnormality_status", "ne", AbnormalityStatus.CLOSED.value),
            ],
        )
        inspections = [Inspection.from_document(row) for row in rows]
        return sorted(
            inspections,
            key=lambda item: (ABNORMALITY_ORDER[item.abnormality_status], item.inspection_date, item.id),
        )

    @service_call
    def by_section(self, section: Union[MachineSection, str]) -> List[Inspection]:
        resolved = MachineSection.from_free_text(section.value if isinstance(section, MachineSection) else section)
        if resolved is None:
            return []
        machines = self.machines.list(MachineFilter.by_section(resolved)).unwrap()
        merged: List[Inspection] = []
        for machine in machines:
            result = self.for_machine(machine.id)
            if not result.ok:
                logger.warning("Skipping inspections for machine %s: %s", machine.id, result.error.message)
                continue
            merged.extend(result.value)
        return _newest_first(merged)

    @service_call
    def list_all(self) -> List[Inspection]:
        rows = self.repository.query(INSPECTIONS, [where("is_draft", "eq", False)], [desc("inspection_date")])
        return [Inspection.from_document(row) for row in rows]

    @service_call
    def search(self, query: str) -> List[Inspection]:
        rows = self.repository.query(INSPECTIONS, [where("is_draft", "eq", False)], [desc("inspection_date")])
        inspections = [Inspection.from_document(row) for row in rows]
        needle = str(query or "").strip().lower()
        if not needle:
            return inspections
        names = {row["id"]: str(row.get("name") or "") for row in self.repository.query(MACHINES)}
        return [
            item
            for item in inspections
            if needle in item.id.lower()
            or needle in item.machine_id.lower()
            or needle in names.get(item.machine_id, "").lower()
        ]
