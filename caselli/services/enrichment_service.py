"""
Property enrichment: look an address up and, when a deal is named, store
the result on it.

Shared by the enrich_property tool and create_deal's automatic lookup.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from caselli.clients.property_data import EnrichmentError, PropertyDataClient
from caselli.db.database import unit_of_work
from caselli.db.repositories import ENRICHMENT_FIELDS, DealsRepository
from caselli.utils.logging import get_logger

logger = get_logger(__name__)


class PropertyEnrichmentService:
    def __init__(
        self,
        client: PropertyDataClient,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        self.client = client
        self.session_factory = session_factory

    async def enrich(
        self,
        owner_id: uuid.UUID,
        address: str,
        city: Optional[str] = None,
        state: Optional[str] = None,
        zip_code: Optional[str] = None,
        deal_id: Optional[uuid.UUID] = None,
    ) -> Dict[str, Any]:
        """
        Fetch property data and optionally persist it onto a deal.

        Returns:
            {"property": normalized fields, "deal_updated": bool}

        Raises:
            EnrichmentError: Lookup failed; the caller decides how to report it
        """
        data = await self.client.lookup(address, city=city, state=state, zip_code=zip_code)
        prop = data["property"]

        deal_updated = False
        if deal_id is not None:
            async with unit_of_work(self.session_factory) as session:
                deals = DealsRepository(session)
                deal = await deals.get(owner_id, deal_id)
                if deal is None:
                    raise EnrichmentError("Deal not found for enrichment")
                changes: Dict[str, Any] = {
                    field: prop[field] for field in ENRICHMENT_FIELDS if field in prop
                }
                changes["property_data"] = data["raw"]
                changes["enriched_at"] = datetime.now(timezone.utc)
                await deals.update(deal, changes)
                deal_updated = True

        logger.info(
            "Property enriched",
            deal_id=str(deal_id) if deal_id else None,
            fields=sorted(prop),
        )
        return {"property": prop, "deal_updated": deal_updated}
