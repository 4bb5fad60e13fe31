from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

USERS = "users"
MACHINES = "machines"
INSPECTIONS = "inspections"

LLF_DIMENSIONS = ("look", "listen", "feel")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRole(str, Enum):
    MANAGEMENT = "MANAGEMENT"
    DEPARTMENT_HEAD = "DEPARTMENT_HEAD"
    SECTION_HEAD = "SECTION_HEAD"
    AREA_HEAD = "AREA_HEAD"
    ENGINEER = "ENGINEER"
    WORKMAN = "WORKMAN"


class MachineCategory(str, Enum):
    FANS = "FANS"
    BLOWERS = "BLOWERS"
    PUMPS = "PUMPS"
    ROLLERS = "ROLLERS"
    HYDRAULIC_PRESS = "HYDRAULIC_PRESS"
    STATIC_EQUIPMENT = "STATIC_EQUIPMENT"
    OTHER = "OTHER"


class MachineSection(str, Enum):
    SPINNING = "SPINNING"
    AUXILIARY = "AUXILIARY"
    VISCOSE = "VISCOSE"
    ENERGY_CENTERS = "ENERGY_CENTERS"
    CS2_PLANT = "CS2_PLANT"
    ACID_PLANT = "ACID_PLANT"
    ETP = "ETP"
    OTHER = "OTHER"

    @classmethod
    def from_free_text(cls, value: str) -> Optional["MachineSection"]:
        key = str(value or "").strip().upper().replace(" ", "_").replace("-", "_")
        try:
            return cls(key)
        except ValueError:
            return None


class InspectionFrequency(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


class InspectionStatus(str, Enum):
    OK = "OK"
    NOT_OK = "NOT_OK"


class AbnormalityStatus(str, Enum):
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"


ABNORMALITY_ORDER = {status: index for index, status in enumerate(AbnormalityStatus)}


def _from_document(cls, document: Dict[str, Any], enums: Dict[str, type]):
    names = {f.name for f in fields(cls)}
    values = {key: value for key, value in (document or {}).items() if key in names}
    for key, enum_cls in enums.items():
        if values.get(key) is not None:
            values[key] = enum_cls(values[key])
    return cls(**values)


def _to_document(instance) -> Dict[str, Any]:
    data = asdict(instance)
    for key, value in data.items():
        if isinstance(value, Enum):
            data[key] = value.value
    return data


@dataclass
class User:
    id: str
    email: str
    name: str
    role: UserRole = UserRole.WORKMAN
    department: str = ""
    section: str = ""
    area: str = ""
    is_approved: bool = True
    created_at: datetime = field(default_factory=utcnow)

    @staticmethod
    def approval_default(role: UserRole) -> bool:
        return UserRole(role) != UserRole.ENGINEER

    def to_document(self) -> Dict[str, Any]:
        return _to_document(self)

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "User":
        return _from_document(cls, document, {"role": UserRole})


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: UserRole
    section: str = ""

    @classmethod
    def from_user(cls, user: User) -> "Principal":
        return cls(user_id=user.id, role=user.role, section=user.section)


@dataclass
class Machine:
    id: str
    name: str
    category: MachineCategory = MachineCategory.OTHER
    section: MachineSection = MachineSection.OTHER
    sub_category: str = ""
    image_ref: str = ""
    inspection_frequency: InspectionFrequency = InspectionFrequency.WEEKLY
    last_inspection: Optional[datetime] = None
    next_inspection_due: Optional[datetime] = None
    created_by: str = ""
    created_at: datetime = field(default_factory=utcnow)
    is_active: bool = True
    version: int = 0

    def is_inspection_due(self, now: Optional[datetime] = None) -> bool:
        from .scheduling import is_due

        return is_due(now or utcnow(), self.next_inspection_due)

    def days_until_next_inspection(self, now: Optional[datetime] = None) -> int:
        from .scheduling import days_until

        return days_until(now or utcnow(), self.next_inspection_due)

    def to_document(self) -> Dict[str, Any]:
        return _to_document(self)

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "Machine":
        return _from_document(
            cls,
            document,
            {
                "category": MachineCategory,
                "section": MachineSection,
                "inspection_frequency": InspectionFrequency,
            },
        )


@dataclass(frozen=True)
class Observation:
    status: InspectionStatus = InspectionStatus.OK
    notes: str = ""
    attachment: Optional[str] = None

    @property
    def is_abnormal(self) -> bool:
        return self.status == InspectionStatus.NOT_OK


@dataclass
class Inspection:
    id: str
    machine_id: str
    inspected_by: str
    inspection_date: datetime = field(default_factory=utcnow)
    look: Observation = field(default_factory=Observation)
    listen: Observation = field(default_factory=Observation)
    feel: Observation = field(default_factory=Observation)
    has_abnormality: bool = False
    abnormality_status: AbnormalityStatus = AbnormalityStatus.CLOSED
    abnormality_closed_by: Optional[str] = None
    abnormality_closed_date: Optional[datetime] = None
    abnormality_resolution_notes: str = ""
    abnormality_resolution_attachment: Optional[str] = None
    is_draft: bool = False
    last_updated: datetime = field(default_factory=utcnow)
    version: int = 0

    def observation(self, dimension: str) -> Observation:
        return getattr(self, dimension)

    def has_any_abnormality(self) -> bool:
        return any(self.observation(dimension).is_abnormal for dimension in LLF_DIMENSIONS)

    def is_complete(self) -> bool:
        return not self.is_draft

    def is_abnormality_closed(self) -> bool:
        return not self.has_abnormality or self.abnormality_status == AbnormalityStatus.CLOSED

    def requires_engineer_attention(self) -> bool:
        return self.has_abnormality and self.abnormality_status in {
            AbnormalityStatus.OPEN,
            AbnormalityStatus.IN_PROGRESS,
        }

    def attachments(self) -> Dict[str, str]:
        refs = {dimension: self.observation(dimension).attachment for dimension in LLF_DIMENSIONS}
        return {dimension: ref for dimension, ref in refs.items() if ref}

    def with_observations(self, **observations: Observation) -> "Inspection":
        return replace(self, **observations)

    def to_document(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for item in fields(self):
            if item.name in LLF_DIMENSIONS:
                observation = self.observation(item.name)
                data[f"{item.name}_status"] = observation.status.value
                data[f"{item.name}_notes"] = observation.notes
                data[f"{item.name}_attachment"] = observation.attachment
                continue
            value = getattr(self, item.name)
            data[item.name] = value.value if isinstance(value, Enum) else value
        return data

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "Inspection":
        document = dict(document or {})
        observations = {}
        for dimension in LLF_DIMENSIONS:
            observations[dimension] = Observation(
                status=InspectionStatus(document.pop(f"{dimension}_status", None) or InspectionStatus.OK),
                notes=document.pop(f"{dimension}_notes", None) or "",
                attachment=document.pop(f"{dimension}_attachment", None),
            )
        inspection = _from_document(cls, document, {"abnormality_status": AbnormalityStatus})
        return replace(inspection, **observations)
