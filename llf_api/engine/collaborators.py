from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Upload:
    data: bytes
    content_type: str = "application/octet-stream"
    filename: str = ""


@dataclass(frozen=True)
class AuthSession:
    user_id: str
    token: str
    session_id: str
    expires_at: datetime


class BlobStore(ABC):
    @abstractmethod
    def upload(self, path_hint: str, data: bytes, content_type: str) -> str:
        """Store bytes and return an opaque reference."""
        raise NotImplementedError

    @abstractmethod
    def resolve_url(self, reference: str) -> str:
        raise NotImplementedError

    @abstractmethod
    def delete(self, reference: str) -> None:
        raise NotImplementedError


class IdentityProvider(ABC):
    @abstractmethod
    def create_account(self, email: str, password: str) -> str:
        raise NotImplementedError

    @abstractmethod
    def delete_account(self, user_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def authenticate(self, email: str, password: str) -> AuthSession:
        raise NotImplementedError

    @abstractmethod
    def current_session(self, token: Optional[str]) -> AuthSession:
        raise NotImplementedError

    @abstractmethod
    def sign_out(self, token: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def issue_password_reset(self, email: str) -> str:
        raise NotImplementedError

    @abstractmethod
    def confirm_password_reset(self, reset_token: str, new_password: str) -> None:
        raise NotImplementedError


def discard_blob(blob_store: BlobStore, reference: Optional[str]) -> bool:
    """Best-effort delete; failures are logged and swallowed."""
    if not reference:
        return False
    try:
        blob_store.delete(reference)
        return True
    except Exception:
        logger.exception("Failed to delete blob %s", reference)
        return False
