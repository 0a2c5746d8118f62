"""Storage backends for property listings."""

from imobi.store.base import (
    DEFAULT_SEED,
    BackendNotConfiguredError,
    PropertyBackend,
    PropertyNotFoundError,
    SnapshotCallback,
    StoreError,
    SubscriptionHub,
    Unsubscribe,
    first_snapshot,
    partition_key,
)
from imobi.store.factory import open_backend
from imobi.store.local import LocalPropertyStore, SimulatedLatency, SqliteKeyValue
from imobi.store.remote import FirestorePropertyStore

__all__ = [
    "DEFAULT_SEED",
    "BackendNotConfiguredError",
    "FirestorePropertyStore",
    "LocalPropertyStore",
    "PropertyBackend",
    "PropertyNotFoundError",
    "SimulatedLatency",
    "SnapshotCallback",
    "SqliteKeyValue",
    "StoreError",
    "SubscriptionHub",
    "Unsubscribe",
    "first_snapshot",
    "open_backend",
    "partition_key",
]
