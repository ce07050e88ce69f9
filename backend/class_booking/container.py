from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .config import Settings
from .database import build_engine
from .domain.repositories import RecordStore
from .infrastructure.memory import InMemoryRecordStore
from .infrastructure.repositories import SqlAlchemyRecordStore
from .usecases.classes import ClassCatalog
from .usecases.denormalization import DenormalizationManager
from .usecases.ledger import CapacityLedger


@dataclass
class Services:
    """Built once per application and handed to request handlers."""

    settings: Settings
    store: RecordStore
    catalog: ClassCatalog
    denormalizer: DenormalizationManager
    ledger: CapacityLedger


def build_store(settings: Settings) -> RecordStore:
    if settings.store_backend == "memory":
        return InMemoryRecordStore(max_retries=settings.transaction_max_retries)
    return SqlAlchemyRecordStore(build_engine(settings), max_retries=settings.transaction_max_retries)


def build_services(settings: Settings, store: Optional[RecordStore] = None) -> Services:
    store = store if store is not None else build_store(settings)
    denormalizer = DenormalizationManager(store)
    return Services(
        settings=settings,
        store=store,
        catalog=ClassCatalog(store),
        denormalizer=denormalizer,
        ledger=CapacityLedger(store, denormalizer, timeout=settings.store_timeout_seconds),
    )
