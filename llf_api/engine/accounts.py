from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, List, Optional

from .collaborators import AuthSession, IdentityProvider
from .entities import USERS, User, UserRole, utcnow
from .errors import (
    PendingApproval,
    PermissionDenied,
    ProfileNotFound,
    NotFound,
    ValidationError,
    service_call,
)
from .policy import can_approve_engineers, is_active_account
from .repository import Repository, asc, where

logger = logging.getLogger(__name__)

PasswordResetSender = Callable[[str, str], None]


def log_password_reset(email: str, reset_token: str) -> None:
    logger.info("Password reset requested for %s", email)
    logger.debug("Password reset token for %s: %s", email, reset_token)


@dataclass(frozen=True)
class LoginResult:
    user: User
    session: AuthSession


class AuthWorkflow:
    def __init__(
        self,
        *,
        repository: Repository,
        identity: IdentityProvider,
        reset_sender: Optional[PasswordResetSender] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repository = repository
        self.identity = identity
        self.reset_sender = reset_sender or log_password_reset
        self.clock = clock

    def _profile(self, user_id: str) -> User:
        document = self.repository.get(USERS, user_id) if user_id else None
        if document is None:
            raise ProfileNotFound(f"User profile not found: {user_id}")
        return User.from_document(document)

    def _approver(self, approver_id: str) -> User:
        approver = self._profile(approver_id)
        if not is_active_account(approver) or not can_approve_engineers(approver):
            raise PermissionDenied("Only department, section or area heads and management can approve engineers")
        return approver

    @service_call
    def register(
        self,
        email: str,
        password: str,
        name: str,
        role: UserRole,
        department: str = "",
        section: str = "",
        area: str = "",
    ) -> User:
        email = str(email or "").strip().lower()
        name = str(name or "").strip()
        if not email:
            raise ValidationError("Email is required")
        if not name:
            raise ValidationError("Name is required")
        try:
            role = UserRole(role)
        except ValueError as exc:
            raise ValidationError(f"Unknown role: {role}") from exc
        user_id = self.identity.create_account(email, password)
        user = User(
            id=user_id,
            email=email,
            name=name,
            role=role,
            department=str(department or "").strip(),
            section=str(section or "").strip(),
            area=str(area or "").strip(),
            is_approved=User.approval_default(role),
            created_at=self.clock(),
        )
        try:
            self.repository.put(USERS, user.id, user.to_document())
        except Exception:
            try:
                self.identity.delete_account(user_id)
            except Exception:
                logger.warning("Could not remove credential %s after failed profile write", user_id, exc_info=True)
            raise
        logger.info("Registered %s as %s (approved=%s)", user.email, role.value, user.is_approved)
        return user

    @service_call
    def login(self, email: str, password: str) -> LoginResult:
        session = self.identity.authenticate(str(email or "").strip().lower(), password)
        try:
            user = self._profile(session.user_id)
            if not is_active_account(user):
                raise PendingApproval("Your account is pending approval")
        except Exception:
            self.identity.sign_out(session.token)
            raise
        return LoginResult(user=user, session=session)

    @service_call
    def logout(self, token: str) -> None:
        self.identity.sign_out(token)

    @service_call
    def reset_password(self, email: str) -> None:
        email = str(email or "").strip().lower()
        if not email:
            raise ValidationError("Email is required")
        reset_token = self.identity.issue_password_reset(email)
        self.reset_sender(email, reset_token)

    @service_call
    def confirm_password_reset(self, reset_token: str, new_password: str) -> None:
        self.identity.confirm_password_reset(reset_token, new_password)

    @service_call
    def approve_engineer(self, approver_id: str, target_user_id: str, approved: bool = True) -> User:
        approver = self._approver(approver_id)
        document = self.repository.get(USERS, target_user_id) if target_user_id else None
        if document is None:
            raise NotFound(f"User not found: {target_user_id}")
        target = replace(User.from_document(document), is_approved=bool(approved))
        self.repository.put(USERS, target.id, target.to_document())
        logger.info("%s set approval of %s to %s", approver.id, target.id, target.is_approved)
        return target

    @service_call
    def list_pending_engineers(self, approver_id: str) -> List[User]:
        self._approver(approver_id)
        rows = self.repository.query(
            USERS,
            [where("role", "eq", UserRole.ENGINEER.value), where("is_approved", "eq", False)],
            [asc("created_at")],
        )
        return [User.from_document(row) for row in rows]

    @service_call
    def get_profile(self, user_id: str) -> User:
        return self._profile(user_id)
