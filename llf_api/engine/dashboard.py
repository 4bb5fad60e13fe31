from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .entities import USERS, Inspection, Machine, MachineSection, User
from .errors import ProfileNotFound, Unauthenticated, service_call
from .inspections import InspectionLifecycleManager
from .machines import MachineFilter, MachineLifecycleManager
from .policy import is_admin
from .repository import Repository

logger = logging.getLogger(__name__)


@dataclass
class DashboardOverview:
    user: User
    machines_due: List[Machine] = field(default_factory=list)
    abnormalities: List[Inspection] = field(default_factory=list)


class DashboardService:
    """Read-only aggregation for the landing screen; every call reads fresh data."""

    def __init__(
        self,
        *,
        repository: Repository,
        machines: MachineLifecycleManager,
        inspections: InspectionLifecycleManager,
    ):
        self.repository = repository
        self.machines = machines
        self.inspections = inspections

    @service_call
    def load_overview(self, user_id: Optional[str]) -> DashboardOverview:
        if not user_id:
            raise Unauthenticated("No active session")
        document = self.repository.get(USERS, user_id)
        if document is None:
            raise ProfileNotFound(f"User profile not found: {user_id}")
        user = User.from_document(document)
        machines_due = self.machines.list(MachineFilter.due_for_inspection()).unwrap()
        if is_admin(user):
            abnormalities = self.inspections.open_abnormalities().unwrap()
        elif MachineSection.from_free_text(user.section) is None:
            logger.debug("User %s section %r matches no machine section", user.id, user.section)
            abnormalities = []
        else:
            abnormalities = [
                item
                for item in self.inspections.by_section(user.section).unwrap()
                if item.has_abnormality and not item.is_abnormality_closed()
            ]
        return DashboardOverview(user=user, machines_due=machines_due, abnormalities=abnormalities)
