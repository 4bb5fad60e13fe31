import os
import re
from pathlib import Path
from typing import Any, Dict

from llf_api.engine.errors import StorageError


def _safe_name(name: str) -> str:
    value = re.sub(r"[^a-zA-Z0-9._-]+", "-", (name or "file").strip())
    return value or "file"


def safe_key(path_hint: str) -> str:
    segments = [_safe_name(segment) for segment in str(path_hint or "").split("/") if segment.strip() not in {"", ".", ".."}]
    return "/".join(segments) or "file"


class LocalStorageProvider:
    provider_type = "local"

    def __init__(self, config: Dict[str, Any]):
        self.config = config or {}
        self.base_path = Path(
            str(self.config.get("base_path") or os.environ.get("LLF_UPLOADS_LOCAL_PATH") or "/tmp/llf-uploads")
        )
        self.public_base_url = str(self.config.get("public_base_url") or "").rstrip("/")

    def _path(self, key: str) -> Path:
        return self.base_path / safe_key(key)

    def put_bytes(self, *, path_hint: str, data: bytes, content_type: str) -> str:
        key = safe_key(path_hint)
        full_path = self.base_path / key
        try:
            full_path.parent.mkdir(parents=True, exist_ok=True)
            full_path.write_bytes(data)
        except OSError as exc:
            raise StorageError(f"Local upload failed for {key}: {exc}") from exc
        return key

    def build_download_reference(self, key: str, ttl_seconds: int = 86400) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{safe_key(key)}"
        return str(self._path(key))

    def delete_object(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            raise StorageError(f"Local delete failed for {key}: {exc}") from exc
