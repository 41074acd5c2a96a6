"""
Handler lookup table, built once at startup.

ToolExecutor refuses to start if any ToolName is left without a handler.
"""

from typing import Dict

from caselli.clients.storage import StorageClient
from caselli.services.background import BackgroundDispatcher
from caselli.services.enrichment_service import PropertyEnrichmentService
from caselli.tools.catalog import ToolName
from caselli.tools.contacts import AddContact, SearchContacts, UpdateContact
from caselli.tools.deals import (
    CheckUpcomingDeadlines,
    CreateDeal,
    GetActiveDeals,
    GetDealDetails,
    UpdateDeal,
)
from caselli.tools.drafting import DraftEmail, DraftListingDescription, DraftSocialPost
from caselli.tools.enrichment import EnrichProperty
from caselli.tools.executor import ToolExecutor, ToolHandler
from caselli.tools.files import CreateFile
from caselli.tools.planning import CreateTodos, UpdateTodo


def build_handlers(
    enrichment: PropertyEnrichmentService,
    storage: StorageClient,
    signed_url_ttl_seconds: int,
) -> Dict[ToolName, ToolHandler]:
    return {
        ToolName.GET_ACTIVE_DEALS: GetActiveDeals(),
        ToolName.GET_DEAL_DETAILS: GetDealDetails(),
        ToolName.CHECK_UPCOMING_DEADLINES: CheckUpcomingDeadlines(),
        ToolName.SEARCH_CONTACTS: SearchContacts(),
        ToolName.CREATE_DEAL: CreateDeal(enrichment),
        ToolName.UPDATE_DEAL: UpdateDeal(),
        ToolName.ADD_CONTACT: AddContact(),
        ToolName.UPDATE_CONTACT: UpdateContact(),
        ToolName.DRAFT_SOCIAL_POST: DraftSocialPost(),
        ToolName.DRAFT_EMAIL: DraftEmail(),
        ToolName.DRAFT_LISTING_DESCRIPTION: DraftListingDescription(),
        ToolName.ENRICH_PROPERTY: EnrichProperty(enrichment),
        ToolName.CREATE_FILE: CreateFile(storage, signed_url_ttl_seconds),
        ToolName.CREATE_TODOS: CreateTodos(),
        ToolName.UPDATE_TODO: UpdateTodo(),
    }


def build_executor(
    enrichment: PropertyEnrichmentService,
    storage: StorageClient,
    signed_url_ttl_seconds: int,
    dispatcher: BackgroundDispatcher,
) -> ToolExecutor:
    return ToolExecutor(
        build_handlers(enrichment, storage, signed_url_ttl_seconds), dispatcher=dispatcher
    )
