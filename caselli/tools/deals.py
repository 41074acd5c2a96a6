"""
Deal tools: pipeline reads, deadlines, create (with automatic enrichment)
and update (with a revert snapshot).
"""

import uuid
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional

from caselli.clients.property_data import EnrichmentError
from caselli.db.database import unit_of_work
from caselli.db.models import Deal
from caselli.db.repositories import (
    ENRICHMENT_FIELDS,
    DealsRepository,
    RepositoryError,
    deal_to_dict,
    field_snapshot,
)
from caselli.services.enrichment_service import PropertyEnrichmentService
from caselli.tools.address import parse_address
from caselli.tools.executor import ToolContext, ToolHandler, ToolOutcome, UndoAction
from caselli.tools.inputs import (
    CreateDealInput,
    EmptyInput,
    GetActiveDealsInput,
    GetDealDetailsInput,
    UpdateDealInput,
)
from caselli.utils.logging import get_logger

logger = get_logger(__name__)

DEADLINE_FIELDS = (
    ("inspection_deadline", "inspection"),
    ("financing_deadline", "financing"),
    ("appraisal_deadline", "appraisal"),
    ("closing_date", "closing"),
)

DEADLINE_WINDOW_DAYS = 7


def collect_deadlines(
    deals: Iterable[Deal], today: date, days: int = DEADLINE_WINDOW_DAYS
) -> List[Dict[str, Any]]:
    """Dates on the given deals within [today, today + days], soonest first."""
    end = today + timedelta(days=days)
    deadlines: List[Dict[str, Any]] = []
    for deal in deals:
        for field, deadline_type in DEADLINE_FIELDS:
            when = getattr(deal, field)
            if when is None or not (today <= when <= end):
                continue
            deadlines.append(
                {
                    "deal_id": str(deal.id),
                    "property_address": deal.property_address,
                    "deadline_type": deadline_type,
                    "date": when.isoformat(),
                    "days_until": (when - today).days,
                }
            )
    deadlines.sort(key=lambda item: (item["date"], item["property_address"]))
    return deadlines


class GetActiveDeals(ToolHandler):
    input_model = GetActiveDealsInput
    task_type = "deal_lookup"

    async def run(self, params: GetActiveDealsInput, ctx: ToolContext) -> ToolOutcome:
        async with unit_of_work(ctx.session_factory) as session:
            deals = await DealsRepository(session).list_active(ctx.owner_id, stage=params.stage)
            items = [deal_to_dict(deal) for deal in deals]

        label = f"{params.stage} deals" if params.stage else "active deals"
        return self.outcome(
            {"deals": items, "count": len(items)}, f"Listed {len(items)} {label}"
        )


class GetDealDetails(ToolHandler):
    input_model = GetDealDetailsInput
    task_type = "deal_lookup"

    async def run(self, params: GetDealDetailsInput, ctx: ToolContext) -> ToolOutcome:
        async with unit_of_work(ctx.session_factory) as session:
            deals = DealsRepository(session)
            deal = None
            if params.deal_id is not None:
                deal = await deals.get(ctx.owner_id, params.deal_id)
            if deal is None and params.address:
                deal = await deals.find_by_address(ctx.owner_id, params.address)
            if deal is None:
                return self.failure("Deal not found")
            data = deal_to_dict(deal)

        return self.outcome({"deal": data}, f"Viewed deal {data['property_address']}")


class CheckUpcomingDeadlines(ToolHandler):
    input_model = EmptyInput
    task_type = "deadline_check"

    async def run(self, params: EmptyInput, ctx: ToolContext) -> ToolOutcome:
        async with unit_of_work(ctx.session_factory) as session:
            deals = await DealsRepository(session).list_active(ctx.owner_id, limit=500)
            deadlines = collect_deadlines(deals, ctx.today)

        return self.outcome(
            {"deadlines": deadlines, "count": len(deadlines)},
            f"Checked deadlines ({len(deadlines)} in the next {DEADLINE_WINDOW_DAYS} days)",
        )


class CreateDeal(ToolHandler):
    """
    Insert a deal, then enrich it when the address names a city and state.

    Enrichment runs after the insert has committed and its outcome is
    reported separately, so a lookup failure never loses the deal.
    """

    input_model = CreateDealInput
    task_type = "deal_created"

    def __init__(self, enrichment: PropertyEnrichmentService):
        self.enrichment = enrichment

    async def run(self, params: CreateDealInput, ctx: ToolContext) -> ToolOutcome:
        async with unit_of_work(ctx.session_factory) as session:
            deal = await DealsRepository(session).create(ctx.owner_id, **params.changes())
            data = deal_to_dict(deal)

        enrichment = await self._enrich(ctx, deal.id, params.property_address)
        if enrichment and "property" in enrichment:
            data.update(
                {
                    field: enrichment["property"][field]
                    for field in ENRICHMENT_FIELDS
                    if field in enrichment["property"]
                }
            )

        undo = UndoAction(
            type="delete_deal",
            entity_id=data["id"],
            label=f"Created deal for {params.property_address}",
        )
        return self.outcome(
            {"deal": data, "enrichment": enrichment},
            f"Created deal for {params.property_address}",
            undo,
        )

    async def _enrich(
        self, ctx: ToolContext, deal_id: uuid.UUID, address: str
    ) -> Optional[Dict[str, Any]]:
        parsed = parse_address(address)
        if parsed is None:
            logger.info("Skipping enrichment, address not parseable", address=address)
            return None
        try:
            enriched = await self.enrichment.enrich(
                ctx.owner_id,
                parsed.street,
                city=parsed.city,
                state=parsed.state,
                zip_code=parsed.zip_code,
                deal_id=deal_id,
            )
        except EnrichmentError as e:
            logger.info("Enrichment failed for new deal", deal_id=str(deal_id), error=str(e))
            return {"error": str(e)}
        except RepositoryError as e:
            # The deal itself is committed; only the enrichment write was lost
            logger.error("Could not store enrichment on new deal", deal_id=str(deal_id), error=str(e))
            return {"error": "Property details could not be saved to the deal"}
        return {"property": enriched["property"]}


class UpdateDeal(ToolHandler):
    input_model = UpdateDealInput
    task_type = "deal_updated"

    async def run(self, params: UpdateDealInput, ctx: ToolContext) -> ToolOutcome:
        changes = params.changes()

        async with unit_of_work(ctx.session_factory) as session:
            deals = DealsRepository(session)
            deal = await deals.get(ctx.owner_id, params.deal_id)
            if deal is None:
                return self.failure("Deal not found")

            previous = field_snapshot(deal, list(changes))
            await deals.update(deal, changes)
            data = deal_to_dict(deal)

        fields = sorted(changes)
        undo = UndoAction(
            type="revert_deal",
            entity_id=data["id"],
            previous_values=previous,
            label=f"Updated {', '.join(fields)} on {data['property_address']}",
        )
        return self.outcome(
            {"deal": data, "updated_fields": fields},
            f"Updated {', '.join(fields)} on {data['property_address']}",
            undo,
        )
