"""
Drafting tools.

These do not write anything themselves. They fetch the deal the draft is
about (plus the owner's brand voice) and hand it back; the model writes the
copy in its reply. When no deal matches, the model is told to draft from the
conversation instead of failing.
"""

from typing import Any, Dict, Optional

from caselli.db.database import unit_of_work
from caselli.db.models import Deal
from caselli.db.repositories import DealsRepository, ProfilesRepository, deal_to_dict
from caselli.tools.catalog import DRAFTING_TOOLS, ToolName
from caselli.tools.executor import ToolContext, ToolHandler, ToolOutcome
from caselli.tools.inputs import (
    DealLookupInput,
    DraftEmailInput,
    DraftListingDescriptionInput,
    DraftSocialPostInput,
)

NO_DEAL_MESSAGE = (
    "No matching deal was found. Draft the {kind} from the details in the "
    "conversation, and ask for anything essential that is missing."
)


class DraftingHandler(ToolHandler):
    tool: ToolName
    task_type = "content_drafted"

    @property
    def content_type(self) -> str:
        return DRAFTING_TOOLS[self.tool]

    def instructions(self, params: Any) -> Dict[str, Any]:
        return {}

    async def run(self, params: DealLookupInput, ctx: ToolContext) -> ToolOutcome:
        kind = self.content_type.replace("_", " ")

        async with unit_of_work(ctx.session_factory) as session:
            deal = await self._resolve(session, ctx, params)
            profile = await ProfilesRepository(session).get(ctx.owner_id)
            brand = {}
            if profile is not None:
                brand = {
                    key: value
                    for key, value in (
                        ("brand_tone", profile.brand_tone),
                        ("brand_voice_notes", profile.brand_voice_notes),
                        ("business_name", profile.business_name),
                    )
                    if value
                }
            deal_data = deal_to_dict(deal) if deal is not None else None

        result: Dict[str, Any] = {"content_type": self.content_type, **self.instructions(params)}
        if brand:
            result["brand"] = brand

        if deal_data is None:
            result.update({"no_deal_found": True, "message": NO_DEAL_MESSAGE.format(kind=kind)})
            return self.outcome(result, f"Drafted {kind} from conversation context")

        result["deal"] = deal_data
        return self.outcome(result, f"Drafted {kind} for {deal_data['property_address']}")

    async def _resolve(self, session, ctx: ToolContext, params: DealLookupInput) -> Optional[Deal]:
        deals = DealsRepository(session)
        if params.deal_id is not None:
            deal = await deals.get(ctx.owner_id, params.deal_id)
            if deal is not None:
                return deal
        if params.address:
            return await deals.find_by_address(ctx.owner_id, params.address)
        return None


class DraftSocialPost(DraftingHandler):
    tool = ToolName.DRAFT_SOCIAL_POST
    input_model = DraftSocialPostInput

    def instructions(self, params: DraftSocialPostInput) -> Dict[str, Any]:
        data: Dict[str, Any] = {"platform": params.platform}
        if params.focus:
            data["focus"] = params.focus
        return data


class DraftEmail(DraftingHandler):
    tool = ToolName.DRAFT_EMAIL
    input_model = DraftEmailInput

    def instructions(self, params: DraftEmailInput) -> Dict[str, Any]:
        return {
            key: value
            for key, value in (
                ("purpose", params.purpose),
                ("recipient_name", params.recipient_name),
            )
            if value
        }


class DraftListingDescription(DraftingHandler):
    tool = ToolName.DRAFT_LISTING_DESCRIPTION
    input_model = DraftListingDescriptionInput

    def instructions(self, params: DraftListingDescriptionInput) -> Dict[str, Any]:
        data: Dict[str, Any] = {"max_words": params.max_words}
        if params.highlights:
            data["highlights"] = params.highlights
        return data
