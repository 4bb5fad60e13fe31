from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from llf_api.engine import BlobStore, InMemoryRepository, Upload
from llf_api.engine.entities import USERS, User, UserRole
from llf_api.engine.errors import Conflict, StorageError
from llf_api.identity import LocalIdentityProvider
from llf_api.services import Services, build_services

TEST_SECRET = "llf-test-signing-secret-0123456789abcdef"
START = datetime(2026, 3, 2, 8, 30, 15, 250000, tzinfo=timezone.utc)


class FixedClock:
    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


class FakeBlobStore(BlobStore):
    def __init__(self):
        self.objects: Dict[str, bytes] = {}
        self.uploads: List[str] = []
        self.deleted: List[str] = []
        self.fail_uploads_after: Optional[int] = None
        self.fail_deletes = False

    def upload(self, path_hint: str, data: bytes, content_type: str) -> str:
        if self.fail_uploads_after is not None and len(self.uploads) >= self.fail_uploads_after:
            raise StorageError(f"upload rejected for {path_hint}")
        reference = f"mem://{path_hint}"
        self.objects[reference] = data
        self.uploads.append(reference)
        return reference

    def resolve_url(self, reference: str) -> str:
        return f"https://blobs.test/{reference.split('://', 1)[1]}"

    def delete(self, reference: str) -> None:
        if self.fail_deletes:
            raise StorageError(f"delete rejected for {reference}")
        self.objects.pop(reference, None)
        self.deleted.append(reference)


class FlakyRepository(InMemoryRepository):
    """In-memory repository whose writes to chosen collections fail or conflict."""

    def __init__(self):
        super().__init__()
        self.failing_puts = set()
        self.failing_queries: Dict[str, str] = {}
        self.conflicting_puts: Dict[str, int] = {}

    def put(self, collection, doc_id, document, *, expected_version=None):
        if collection in self.failing_puts:
            raise StorageError(f"write to {collection} rejected")
        if expected_version is not None and self.conflicting_puts.get(collection):
            self.conflicting_puts[collection] -= 1
            raise Conflict(f"{collection}/{doc_id} was modified concurrently")
        super().put(collection, doc_id, document, expected_version=expected_version)

    def query(self, collection, predicates=(), order_by=()):
        blocked = self.failing_queries.get(collection)
        for predicate in predicates:
            if blocked is not None and predicate.value == blocked:
                raise StorageError(f"query on {collection} rejected")
        return super().query(collection, predicates, order_by)


def image(content: bytes = b"\x89PNG-bytes", content_type: str = "image/png") -> Upload:
    return Upload(data=content, content_type=content_type, filename="photo.png")


def make_services(repository=None, blob_store=None, clock=None) -> Services:
    repository = repository if repository is not None else InMemoryRepository()
    identity = LocalIdentityProvider(repository=repository, secret=TEST_SECRET)
    return build_services(
        repository=repository,
        blob_store=blob_store if blob_store is not None else FakeBlobStore(),
        identity=identity,
        clock=clock or FixedClock(),
    )


def seed_user(
    repository,
    user_id: str,
    role: UserRole = UserRole.WORKMAN,
    section: str = "SPINNING",
    is_approved: bool = True,
) -> User:
    user = User(
        id=user_id,
        email=f"{user_id}@plant.test",
        name=user_id.title(),
        role=role,
        department="Production",
        section=section,
        is_approved=is_approved,
        created_at=START,
    )
    repository.put(USERS, user.id, user.to_document())
    return user
