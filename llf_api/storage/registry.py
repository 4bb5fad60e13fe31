import logging
from typing import Any, Dict, Tuple

from jsonschema import Draft202012Validator

from llf_api.engine.collaborators import BlobStore
from llf_api.engine.errors import StorageError

from .providers.local import LocalStorageProvider
from .providers.s3 import S3StorageProvider

logger = logging.getLogger(__name__)

_STORAGE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "storage": {
            "type": "object",
            "properties": {
                "primary": {
                    "type": "object",
                    "properties": {"name": {"type": "string"}},
                },
                "providers": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "name": {"type": "string", "minLength": 1, "pattern": "^[a-zA-Z0-9_-]+$"},
                            "type": {"type": "string", "enum": ["local", "s3"]},
                            "local": {"type": "object"},
                            "s3": {"type": "object"},
                        },
                        "required": ["name", "type"],
                    },
                },
            },
        }
    },
}
_VALIDATOR = Draft202012Validator(_STORAGE_SCHEMA)

DEFAULT_PROVIDER = "local"


def validate_platform_config(config: Dict[str, Any]) -> None:
    errors = sorted(_VALIDATOR.iter_errors(config or {}), key=lambda err: list(err.path))
    if errors:
        first = errors[0]
        location = "/".join(str(part) for part in first.path) or "<root>"
        raise StorageError(f"Invalid storage config at {location}: {first.message}")


def split_reference(reference: str) -> Tuple[str, str]:
    provider, sep, key = str(reference or "").partition("://")
    if not sep or not provider or not key:
        raise StorageError(f"Malformed blob reference: {reference!r}")
    return provider, key


class StorageProviderRegistry(BlobStore):
    def __init__(self, config: Dict[str, Any]):
        self.config = config or {}
        validate_platform_config(self.config)
        storage = self.config.get("storage") if isinstance(self.config.get("storage"), dict) else {}
        self._storage = storage
        self._providers_by_name = {}
        for provider in storage.get("providers") or []:
            name = str(provider.get("name") or "").strip()
            ptype = str(provider.get("type") or "").strip().lower()
            if ptype == "s3":
                self._providers_by_name[name] = S3StorageProvider(provider.get("s3") or {})
            elif ptype == "local":
                self._providers_by_name[name] = LocalStorageProvider(provider.get("local") or {})

    def get_provider(self, name: str):
        provider = self._providers_by_name.get(name)
        if provider:
            return provider
        if name == DEFAULT_PROVIDER and not self._providers_by_name:
            return LocalStorageProvider({})
        raise StorageError(f"Unknown storage provider: {name}")

    def primary_name(self) -> str:
        primary = self._storage.get("primary") if isinstance(self._storage.get("primary"), dict) else {}
        pname = str(primary.get("name") or "").strip()
        if pname:
            return pname
        if self._providers_by_name:
            return next(iter(self._providers_by_name.keys()))
        return DEFAULT_PROVIDER

    def upload(self, path_hint: str, data: bytes, content_type: str) -> str:
        name = self.primary_name()
        key = self.get_provider(name).put_bytes(path_hint=path_hint, data=data, content_type=content_type)
        logger.debug("Stored %d bytes as %s://%s", len(data), name, key)
        return f"{name}://{key}"

    def resolve_url(self, reference: str, ttl_seconds: int = 86400) -> str:
        name, key = split_reference(reference)
        return self.get_provider(name).build_download_reference(key, ttl_seconds=ttl_seconds)

    def delete(self, reference: str) -> None:
        name, key = split_reference(reference)
        self.get_provider(name).delete_object(key)
