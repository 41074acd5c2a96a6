"""
Reversal of undo actions produced by tool calls.

The client enforces the undo window; the server reverses whatever it is
asked to, scoped to the caller.
"""

import uuid
from typing import Any, Dict, Optional

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from caselli.db.database import unit_of_work
from caselli.db.repositories import (
    ContactNotFoundError,
    ContactsRepository,
    DealNotFoundError,
    DealsRepository,
)
from caselli.tools.inputs import DealFields
from caselli.utils.logging import get_logger

logger = get_logger(__name__)

UNDO_TYPES = ("delete_deal", "delete_contact", "revert_deal")


class UndoError(Exception):
    """Request-level problem with an undo action (maps to HTTP 400)."""

    pass


def revert_values(previous_values: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate a snapshot through DealFields, keeping only deal columns.

    Null values are kept: a field that was empty before the update is
    emptied again.

    Raises:
        UndoError: Snapshot is empty or has no deal fields, or a value is invalid
    """
    if not previous_values:
        raise UndoError("No previous values to revert to")
    known = {key: value for key, value in previous_values.items() if key in DealFields.model_fields}
    if not known:
        raise UndoError("No previous values to revert to")
    try:
        parsed = DealFields.model_validate(known)
    except ValidationError as e:
        raise UndoError(f"Invalid previous values: {e.errors()[0]['msg']}") from e
    values = parsed.model_dump(include=set(known))
    if values.get("property_address") is None:
        values.pop("property_address", None)
    if values.get("stage") is None:
        values.pop("stage", None)
    return values


class UndoService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def undo(
        self,
        owner_id: uuid.UUID,
        undo_type: str,
        entity_id: uuid.UUID,
        previous_values: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Apply one undo action and return the confirmation message.

        Raises:
            UndoError: Unknown type or unusable previous values
            DealNotFoundError / ContactNotFoundError: Nothing to undo for this owner
        """
        if undo_type not in UNDO_TYPES:
            raise UndoError(f"Unknown undo type: {undo_type}")

        async with unit_of_work(self.session_factory) as session:
            if undo_type == "delete_deal":
                if not await DealsRepository(session).delete(owner_id, entity_id):
                    raise DealNotFoundError(f"Deal {entity_id} not found")
                message = "Deal removed"

            elif undo_type == "delete_contact":
                if not await ContactsRepository(session).delete(owner_id, entity_id):
                    raise ContactNotFoundError(f"Contact {entity_id} not found")
                message = "Contact removed"

            else:
                values = revert_values(previous_values or {})
                deals = DealsRepository(session)
                deal = await deals.get(owner_id, entity_id)
                if deal is None:
                    raise DealNotFoundError(f"Deal {entity_id} not found")
                await deals.update(deal, values)
                message = "Deal reverted"

        logger.info("Undo applied", undo_type=undo_type, entity_id=str(entity_id))
        return message
