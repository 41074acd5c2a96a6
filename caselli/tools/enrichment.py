"""The enrich_property tool."""

from caselli.clients.property_data import EnrichmentError
from caselli.services.enrichment_service import PropertyEnrichmentService
from caselli.tools.address import parse_address
from caselli.tools.executor import ToolContext, ToolHandler, ToolOutcome
from caselli.tools.inputs import EnrichPropertyInput


class EnrichProperty(ToolHandler):
    input_model = EnrichPropertyInput
    task_type = "property_enriched"

    def __init__(self, enrichment: PropertyEnrichmentService):
        self.enrichment = enrichment

    async def run(self, params: EnrichPropertyInput, ctx: ToolContext) -> ToolOutcome:
        address, city, state, zip_code = params.address, params.city, params.state, params.zip_code
        if not (city and state):
            parsed = parse_address(address)
            if parsed is not None:
                address = parsed.street
                city = city or parsed.city
                state = state or parsed.state
                zip_code = zip_code or parsed.zip_code

        try:
            enriched = await self.enrichment.enrich(
                ctx.owner_id,
                address,
                city=city,
                state=state,
                zip_code=zip_code,
                deal_id=params.deal_id,
            )
        except EnrichmentError as e:
            return self.failure(str(e))

        result = {"property": enriched["property"], "deal_updated": enriched["deal_updated"]}
        if params.deal_id is not None:
            result["deal_id"] = str(params.deal_id)
        return self.outcome(result, f"Looked up property details for {params.address}")
