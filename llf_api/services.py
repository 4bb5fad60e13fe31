from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from typing import Callable, Optional

from llf_api.config import Settings, load_settings
from llf_api.db import build_engine, build_sessionmaker
from llf_api.engine import (
    AuthWorkflow,
    BlobStore,
    DashboardService,
    IdentityProvider,
    InspectionLifecycleManager,
    MachineLifecycleManager,
    Repository,
)
from llf_api.engine.accounts import PasswordResetSender
from llf_api.engine.entities import utcnow
from llf_api.identity import LocalIdentityProvider
from llf_api.sql_repository import SqlRepository
from llf_api.storage import StorageProviderRegistry


@dataclass
class Services:
    repository: Repository
    blob_store: BlobStore
    identity: IdentityProvider
    machines: MachineLifecycleManager
    inspections: InspectionLifecycleManager
    dashboard: DashboardService
    accounts: AuthWorkflow


def build_services(
    *,
    repository: Repository,
    blob_store: BlobStore,
    identity: IdentityProvider,
    reset_sender: Optional[PasswordResetSender] = None,
    clock: Callable[[], datetime] = utcnow,
) -> Services:
    machines = MachineLifecycleManager(repository=repository, blob_store=blob_store, clock=clock)
    inspections = InspectionLifecycleManager(
        repository=repository, blob_store=blob_store, machines=machines, clock=clock
    )
    return Services(
        repository=repository,
        blob_store=blob_store,
        identity=identity,
        machines=machines,
        inspections=inspections,
        dashboard=DashboardService(repository=repository, machines=machines, inspections=inspections),
        accounts=AuthWorkflow(repository=repository, identity=identity, reset_sender=reset_sender, clock=clock),
    )


def build_default_services(settings: Settings) -> Services:
    repository = SqlRepository(build_sessionmaker(build_engine(settings.database_url)))
    identity = LocalIdentityProvider(
        repository=repository,
        secret=settings.jwt_secret,
        issuer=settings.jwt_issuer,
        audience=settings.jwt_audience,
        session_ttl_seconds=settings.session_ttl_seconds,
        reset_ttl_seconds=settings.reset_ttl_seconds,
    )
    return build_services(
        repository=repository,
        blob_store=StorageProviderRegistry(settings.platform_config),
        identity=identity,
    )


@lru_cache(maxsize=1)
def get_services() -> Services:
    return build_default_services(load_settings())
