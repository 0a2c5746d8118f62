"""Consumer-facing mutation operations over a property backend."""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Final

from imobi.logging import get_logger
from imobi.models import FormStatus, PropertyDraft, PropertyStatus, now_ms
from imobi.store.base import PropertyBackend, SnapshotCallback, Unsubscribe

logger = get_logger(__name__)

Confirm = Callable[[str], bool | Awaitable[bool]]

DELETE_PROMPT: Final = "Tem certeza que deseja excluir este imóvel?"
CLEAR_PROMPT: Final = "ATENÇÃO: Isso apagará TODOS os imóveis da lista.\n\nDeseja continuar?"
RESTORE_PROMPT: Final = (
    "Isso irá restaurar os dados de exemplo e apagar as alterações atuais. Deseja continuar?"
)

FORM_NOTICES: Final[dict[FormStatus, str]] = {
    FormStatus.IN_REVIEW: "Ficha de cadastro marcada como em andamento.",
    FormStatus.APPROVED: "Ficha de cadastro aprovada.",
}


async def _confirmed(confirm: Confirm, prompt: str) -> bool:
    answer = confirm(prompt)
    if inspect.isawaitable(answer):
        answer = await answer
    return bool(answer)


class PropertyService:
    """Dashboard actions: quick edits plus confirmation-gated destructive ops."""

    def __init__(
        self,
        backend: PropertyBackend,
        *,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.backend = backend
        self._clock = clock

    def subscribe(self, callback: SnapshotCallback) -> Unsubscribe:
        return self.backend.subscribe(callback)

    async def create(self, draft: PropertyDraft) -> str:
        return await self.backend.create(draft)

    async def update(self, property_id: str, fields: Mapping[str, Any]) -> None:
        await self.backend.update(property_id, fields)

    async def change_status(self, property_id: str, status: PropertyStatus) -> None:
        """Quick status change from the row menu."""
        await self.backend.update(property_id, {"status": PropertyStatus(status)})

    async def change_form_status(self, property_id: str, form_status: FormStatus) -> str | None:
        """Set the paperwork status, always stamping ``form_updated_at``.

        Returns:
            A notice for the user when the form moved to review or approval,
            otherwise None.
        """
        form_status = FormStatus(form_status)
        await self.backend.update(
            property_id,
            {"form_status": form_status, "form_updated_at": self._clock()},
        )
        return FORM_NOTICES.get(form_status)

    async def delete(self, property_id: str, confirm: Confirm) -> bool:
        """Remove one property if the caller confirms. Returns whether it ran."""
        if not await _confirmed(confirm, DELETE_PROMPT):
            logger.debug("delete_cancelled", property_id=property_id)
            return False
        await self.backend.remove(property_id)
        return True

    async def clear_all(self, confirm: Confirm) -> bool:
        """Irreversibly empty the partition if the caller confirms."""
        if not await _confirmed(confirm, CLEAR_PROMPT):
            logger.debug("clear_cancelled")
            return False
        await self.backend.clear()
        return True

    async def restore_defaults(self, confirm: Confirm) -> bool:
        """Irreversibly replace the partition with the seed set if confirmed."""
        if not await _confirmed(confirm, RESTORE_PROMPT):
            logger.debug("restore_cancelled")
            return False
        await self.backend.restore_defaults()
        return True
