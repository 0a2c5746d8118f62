"""Build the configured property backend."""

from __future__ import annotations

from typing import TYPE_CHECKING

from google.cloud import firestore

from imobi.logging import get_logger
from imobi.store.base import PropertyBackend, partition_key
from imobi.store.local import LocalPropertyStore, SqliteKeyValue
from imobi.store.remote import FirestorePropertyStore

if TYPE_CHECKING:
    from imobi.config import Settings

logger = get_logger(__name__)


def _firestore_client(settings: Settings) -> firestore.Client | None:
    if not settings.firestore_project_id:
        return None
    if settings.firestore_credentials_path:
        return firestore.Client.from_service_account_json(
            settings.firestore_credentials_path,
            project=settings.firestore_project_id,
        )
    return firestore.Client(project=settings.firestore_project_id)


async def open_backend(
    settings: Settings,
    user: str | None = None,
    *,
    kv: SqliteKeyValue | None = None,
) -> PropertyBackend:
    """Create and initialize the backend selected by ``settings.backend``.

    Args:
        settings: Application settings.
        user: Active username; selects the local partition.
        kv: Shared key-value connection (the store closes its own otherwise).

    Returns:
        A ready-to-use backend.
    """
    if settings.backend == "firestore":
        client = _firestore_client(settings)
        if client is None:
            logger.warning("firestore_project_missing", collection=settings.firestore_collection)
        return FirestorePropertyStore(client, settings.firestore_collection)

    store = LocalPropertyStore(
        settings.database_path,
        partition_key(user, settings.partition_prefix),
        latency=settings.get_latency(),
        initial_delay=settings.initial_delivery_delay_seconds,
        poll_interval=settings.poll_interval,
        kv=kv,
    )
    await store.initialize()
    logger.debug("local_backend_opened", partition=store.partition, path=settings.database_path)
    return store
