"""Firestore-backed property store with native push notifications."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from typing import Any, Final

from google.api_core.exceptions import NotFound
from google.cloud import firestore
from pydantic import ValidationError

from imobi.logging import get_logger
from imobi.models import Property, PropertyDraft, PropertyUpdate, now_ms, persisted_name
from imobi.store.base import (
    BackendNotConfiguredError,
    PropertyNotFoundError,
    SnapshotCallback,
    Unsubscribe,
    deliver,
)

logger = get_logger(__name__)

DEFAULT_COLLECTION: Final = "imoveis"
STAMP_FIELD: Final = persisted_name("last_updated_at")


def document_to_property(doc: Any) -> Property | None:
    """Build a Property from a Firestore document snapshot, None if malformed."""
    try:
        return Property.model_validate({**(doc.to_dict() or {}), "id": doc.id})
    except ValidationError as e:
        logger.warning("document_unreadable", document_id=doc.id, error_count=e.error_count())
        return None


class FirestorePropertyStore:
    """Property backend over a shared Firestore collection.

    Documents use the persisted field names (``codigo``, ``dataAtualizacao``,
    ...) so the collection stays readable by the web dashboard. It is ordered
    by the update stamp descending and observed with ``on_snapshot``. Bulk
    ``clear``/``restore_defaults`` are refused here, since the collection is
    shared production data.
    """

    def __init__(
        self,
        client: firestore.Client | None,
        collection: str = DEFAULT_COLLECTION,
        *,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._client = client
        self.collection_name = collection
        self._clock = clock
        self._watches: list[Any] = []

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    def _collection(self) -> Any:
        if self._client is None:
            raise BackendNotConfiguredError("Firestore client is not configured")
        return self._client.collection(self.collection_name)

    def subscribe(self, callback: SnapshotCallback) -> Unsubscribe:
        if self._client is None:
            logger.error("firestore_not_initialized", collection=self.collection_name)
            return lambda: None

        loop = asyncio.get_running_loop()
        query = self._collection().order_by(STAMP_FIELD, direction=firestore.Query.DESCENDING)
        active = True

        def on_snapshot(docs: list[Any], changes: Any, read_time: Any) -> None:
            # Runs on the listener thread; hand off to the subscriber's loop.
            if not active or loop.is_closed():
                return
            records = [p for p in (document_to_property(d) for d in docs) if p is not None]
            try:
                loop.call_soon_threadsafe(_deliver_if_active, records)
            except RuntimeError:
                # Loop closed between the check and the call
                logger.debug("snapshot_dropped_loop_closed", collection=self.collection_name)

        def _deliver_if_active(records: list[Property]) -> None:
            if active:
                deliver(callback, records)

        watch = query.on_snapshot(on_snapshot)
        self._watches.append(watch)

        def unsubscribe() -> None:
            nonlocal active
            if not active:
                return
            active = False
            watch.unsubscribe()
            if watch in self._watches:
                self._watches.remove(watch)

        return unsubscribe

    async def create(self, draft: PropertyDraft) -> str:
        collection = self._collection()
        data = {**draft.model_dump(mode="json", by_alias=True), STAMP_FIELD: self._clock()}
        _, ref = await asyncio.to_thread(collection.add, data)
        logger.info("property_created", collection=self.collection_name, property_id=ref.id)
        return str(ref.id)

    async def update(self, property_id: str, fields: Mapping[str, Any]) -> None:
        collection = self._collection()
        changes = PropertyUpdate.model_validate(dict(fields)).model_dump(
            mode="json", by_alias=True, exclude_unset=True, exclude={"last_updated_at"}
        )
        changes[STAMP_FIELD] = self._clock()
        try:
            await asyncio.to_thread(collection.document(property_id).update, changes)
        except NotFound as e:
            raise PropertyNotFoundError(property_id) from e
        logger.info(
            "property_updated",
            collection=self.collection_name,
            property_id=property_id,
            fields=sorted(k for k in changes if k != STAMP_FIELD),
        )

    async def remove(self, property_id: str) -> None:
        collection = self._collection()
        await asyncio.to_thread(collection.document(property_id).delete)
        logger.info("property_removed", collection=self.collection_name, property_id=property_id)

    async def clear(self) -> None:
        self._collection()
        logger.warning("clear_not_supported", collection=self.collection_name)

    async def restore_defaults(self) -> None:
        self._collection()
        logger.warning("restore_defaults_not_supported", collection=self.collection_name)

    async def close(self) -> None:
        for watch in list(self._watches):
            watch.unsubscribe()
        self._watches.clear()
        if self._client is not None:
            await asyncio.to_thread(self._client.close)
