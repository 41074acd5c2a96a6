"""
Tests for tool dispatch and the CRM tool handlers.

Handlers run against a real SQLite database; property data and storage go
through httpx.MockTransport.
"""

import uuid
from datetime import date

import httpx

from caselli.clients.property_data import PropertyDataClient
from caselli.db.database import unit_of_work
from caselli.db.models import BusinessProfile
from caselli.db.repositories import (
    ContactsRepository,
    DealsRepository,
    RepositoryError,
    TaskHistoryRepository,
)
from caselli.services.enrichment_service import PropertyEnrichmentService
from caselli.tools.catalog import ToolName
from caselli.tools.executor import ToolContext, ToolExecutor, ToolHandler
from caselli.tools.inputs import EmptyInput
from caselli.tools.registry import build_handlers
from tests.fakes import OTHER_USER_ID


async def make_deal(session_factory, owner_id, **fields):
    fields.setdefault("property_address", "123 Main St, Austin TX")
    async with unit_of_work(session_factory) as session:
        deal = await DealsRepository(session).create(owner_id, **fields)
    return deal


async def load_deal(session_factory, owner_id, deal_id):
    async with unit_of_work(session_factory) as session:
        return await DealsRepository(session).get(owner_id, deal_id)


class TestDispatch:
    async def test_unknown_tool_is_an_error_result(self, executor, tool_ctx):
        outcome = await executor.execute("delete_everything", {}, tool_ctx)

        assert outcome.result == {"error": "Unknown tool"}
        assert not outcome.success

    async def test_invalid_input_is_an_error_result(self, executor, tool_ctx):
        outcome = await executor.execute("add_contact", {"email": "x@example.com"}, tool_ctx)

        assert not outcome.success
        assert outcome.result["error"] == "Invalid input for add_contact: Contact name is required"

    async def test_none_input_is_treated_as_empty(self, executor, tool_ctx):
        outcome = await executor.execute("check_upcoming_deadlines", None, tool_ctx)
        assert outcome.success

    async def test_handler_exception_is_contained(
        self, enrichment, storage_client, tool_ctx
    ):
        class Exploding(ToolHandler):
            input_model = EmptyInput

            async def run(self, params, ctx):
                raise RuntimeError("database on fire")

        handlers = build_handlers(enrichment, storage_client, 3600)
        handlers[ToolName.CHECK_UPCOMING_DEADLINES] = Exploding()
        executor = ToolExecutor(handlers)

        outcome = await executor.execute("check_upcoming_deadlines", {}, tool_ctx)

        assert outcome.result == {"error": "check_upcoming_deadlines failed: database on fire"}

    def test_every_tool_needs_a_handler(self, enrichment, storage_client):
        handlers = build_handlers(enrichment, storage_client, 3600)
        del handlers[ToolName.CREATE_FILE]

        try:
            ToolExecutor(handlers)
        except ValueError as e:
            assert "create_file" in str(e)
        else:
            raise AssertionError("missing handler was accepted")

    async def test_successful_writes_are_recorded_in_task_history(
        self, executor, tool_ctx, dispatcher, session_factory, owner_id
    ):
        await executor.execute("add_contact", {"full_name": "Sarah Chen"}, tool_ctx)
        await executor.execute(
            "create_todos",
            {"todos": [{"content": "Call Sarah", "active_form": "Calling Sarah"}]},
            tool_ctx,
        )
        await executor.execute("add_contact", {}, tool_ctx)
        await dispatcher.drain()

        async with unit_of_work(session_factory) as session:
            history = await TaskHistoryRepository(session).list_recent(owner_id)

        assert [(h.task_type, h.description) for h in history] == [
            ("contact_created", "Added contact Sarah Chen")
        ]
        assert history[0].conversation_id == tool_ctx.conversation_id


class TestDealTools:
    async def test_create_deal_enriches_parseable_address(
        self, executor, tool_ctx, property_api, session_factory, owner_id
    ):
        outcome = await executor.execute(
            "create_deal",
            {"property_address": "123 Main St, Austin TX", "list_price": "$450k"},
            tool_ctx,
        )

        assert outcome.success
        deal = outcome.result["deal"]
        assert deal["stage"] == "lead"
        assert deal["list_price"] == 450000.0
        assert deal["bedrooms"] == 4
        assert deal["square_footage"] == 2400
        assert outcome.result["enrichment"]["property"]["year_built"] == 2010

        assert outcome.undo_action.type == "delete_deal"
        assert outcome.undo_action.entity_id == deal["id"]

        assert property_api.requests[0].url.params["address"] == "123 Main St, Austin, TX"

        stored = await load_deal(session_factory, owner_id, uuid.UUID(deal["id"]))
        assert stored.bedrooms == 4
        assert stored.property_data["yearBuilt"] == 2010
        assert stored.enriched_at is not None

    async def test_create_deal_survives_enrichment_failure(
        self, executor, tool_ctx, property_api, session_factory, owner_id
    ):
        property_api.status_code = 500

        outcome = await executor.execute(
            "create_deal", {"property_address": "123 Main St, Austin TX"}, tool_ctx
        )

        assert outcome.success
        assert outcome.result["enrichment"] == {
            "error": "Property data service returned HTTP 500"
        }
        stored = await load_deal(
            session_factory, owner_id, uuid.UUID(outcome.result["deal"]["id"])
        )
        assert stored is not None
        assert stored.bedrooms is None

    async def test_create_deal_survives_enrichment_write_failure(
        self, executor, tool_ctx, property_api, session_factory, owner_id, monkeypatch
    ):
        async def failing_update(repo, deal, changes):
            raise RepositoryError("Database error updating deal: disk I/O error")

        monkeypatch.setattr(DealsRepository, "update", failing_update)

        outcome = await executor.execute(
            "create_deal", {"property_address": "123 Main St, Austin TX"}, tool_ctx
        )

        assert outcome.success
        assert outcome.result["enrichment"] == {
            "error": "Property details could not be saved to the deal"
        }
        assert "bedrooms" not in outcome.result["deal"]
        assert outcome.undo_action.type == "delete_deal"
        stored = await load_deal(
            session_factory, owner_id, uuid.UUID(outcome.result["deal"]["id"])
        )
        assert stored is not None

    async def test_create_deal_skips_enrichment_without_city_and_state(
        self, executor, tool_ctx, property_api
    ):
        outcome = await executor.execute(
            "create_deal", {"property_address": "Lot 7 on the lake"}, tool_ctx
        )

        assert outcome.success
        assert outcome.result["enrichment"] is None
        assert property_api.requests == []

    async def test_update_deal_returns_revert_snapshot(
        self, executor, tool_ctx, session_factory, owner_id
    ):
        deal = await make_deal(session_factory, owner_id, list_price=450000)

        outcome = await executor.execute(
            "update_deal",
            {"deal_id": str(deal.id), "stage": "under_contract", "contract_price": 440000},
            tool_ctx,
        )

        assert outcome.success
        assert outcome.result["updated_fields"] == ["contract_price", "stage"]
        assert outcome.undo_action.type == "revert_deal"
        assert outcome.undo_action.previous_values == {"stage": "lead", "contract_price": None}

        stored = await load_deal(session_factory, owner_id, deal.id)
        assert stored.stage == "under_contract"
        assert stored.contract_price == 440000

    async def test_update_deal_rejects_invalid_stage_without_writing(
        self, executor, tool_ctx, session_factory, owner_id
    ):
        deal = await make_deal(session_factory, owner_id)

        outcome = await executor.execute(
            "update_deal", {"deal_id": str(deal.id), "stage": "won"}, tool_ctx
        )

        assert not outcome.success
        assert "Invalid stage 'won'" in outcome.result["error"]
        assert "under_contract" in outcome.result["error"]
        assert outcome.undo_action is None
        stored = await load_deal(session_factory, owner_id, deal.id)
        assert stored.stage == "lead"

    async def test_update_deal_is_owner_scoped(
        self, executor, tool_ctx, session_factory
    ):
        deal = await make_deal(session_factory, OTHER_USER_ID)

        outcome = await executor.execute(
            "update_deal", {"deal_id": str(deal.id), "stage": "closed"}, tool_ctx
        )

        assert outcome.result == {"error": "Deal not found"}
        stored = await load_deal(session_factory, OTHER_USER_ID, deal.id)
        assert stored.stage == "lead"

    async def test_get_active_deals_excludes_closed(
        self, executor, tool_ctx, session_factory, owner_id
    ):
        await make_deal(session_factory, owner_id, property_address="1 Open Rd")
        await make_deal(session_factory, owner_id, property_address="2 Done Rd", stage="closed")
        await make_deal(session_factory, OTHER_USER_ID, property_address="3 Theirs Rd")

        outcome = await executor.execute("get_active_deals", {}, tool_ctx)

        assert outcome.result["count"] == 1
        assert outcome.result["deals"][0]["property_address"] == "1 Open Rd"

    async def test_get_deal_details_by_address(
        self, executor, tool_ctx, session_factory, owner_id
    ):
        await make_deal(session_factory, owner_id, property_address="123 Main St, Austin TX")

        outcome = await executor.execute(
            "get_deal_details", {"address": "123 main st"}, tool_ctx
        )

        assert outcome.result["deal"]["property_address"] == "123 Main St, Austin TX"

    async def test_upcoming_deadlines_window(self, executor, session_factory, owner_id):
        today = date(2026, 3, 10)
        await make_deal(
            session_factory,
            owner_id,
            property_address="5 Soon St",
            inspection_deadline=date(2026, 3, 12),
            closing_date=date(2026, 4, 30),
        )
        await make_deal(
            session_factory,
            owner_id,
            property_address="6 Today St",
            financing_deadline=today,
        )
        ctx = ToolContext(owner_id=owner_id, session_factory=session_factory, today=today)

        outcome = await executor.execute("check_upcoming_deadlines", {}, ctx)

        assert [(d["property_address"], d["deadline_type"], d["days_until"]) for d in outcome.result["deadlines"]] == [
            ("6 Today St", "financing", 0),
            ("5 Soon St", "inspection", 2),
        ]


class TestContactTools:
    async def test_add_contact_defaults_to_lead(self, executor, tool_ctx):
        outcome = await executor.execute(
            "add_contact", {"name": "Sarah Chen", "email": "sarah@example.com"}, tool_ctx
        )

        assert outcome.result["contact"]["contact_type"] == "lead"
        assert outcome.undo_action.type == "delete_contact"

    async def test_search_contacts(self, executor, tool_ctx, session_factory, owner_id):
        async with unit_of_work(session_factory) as session:
            contacts = ContactsRepository(session)
            await contacts.create(owner_id, full_name="Sarah Chen", contact_type="client")
            await contacts.create(owner_id, full_name="Mike Ross", contact_type="vendor", company="Ross Inspections")

        by_company = await executor.execute("search_contacts", {"query": "inspections"}, tool_ctx)
        by_type = await executor.execute("search_contacts", {"contact_type": "client"}, tool_ctx)

        assert [c["full_name"] for c in by_company.result["contacts"]] == ["Mike Ross"]
        assert [c["full_name"] for c in by_type.result["contacts"]] == ["Sarah Chen"]

    async def test_update_contact_has_no_undo(self, executor, tool_ctx, session_factory, owner_id):
        async with unit_of_work(session_factory) as session:
            contact = await ContactsRepository(session).create(owner_id, full_name="Sarah Chen")

        outcome = await executor.execute(
            "update_contact",
            {"contact_id": str(contact.id), "contact_type": "client", "last_contacted": "2026-03-01"},
            tool_ctx,
        )

        assert outcome.success
        assert outcome.result["contact"]["contact_type"] == "client"
        assert outcome.result["contact"]["last_contacted"] == "2026-03-01"
        assert outcome.undo_action is None


class TestDraftingTools:
    async def test_missing_deal_falls_back_to_conversation(self, executor, tool_ctx):
        outcome = await executor.execute(
            "draft_listing_description", {"address": "742 Evergreen Terrace"}, tool_ctx
        )

        assert outcome.success
        assert outcome.result["no_deal_found"] is True
        assert "Draft the listing description" in outcome.result["message"]

    async def test_draft_includes_deal_and_brand_voice(
        self, executor, tool_ctx, session_factory, owner_id
    ):
        await make_deal(session_factory, owner_id, property_address="123 Main St, Austin TX")
        async with unit_of_work(session_factory) as session:
            session.add(
                BusinessProfile(
                    user_id=owner_id,
                    business_name="Chen Realty",
                    brand_tone="warm, upbeat",
                )
            )

        outcome = await executor.execute(
            "draft_social_post", {"address": "123 Main St", "platform": "Twitter"}, tool_ctx
        )

        assert outcome.result["content_type"] == "social_post"
        assert outcome.result["deal"]["property_address"] == "123 Main St, Austin TX"
        assert outcome.result["brand"] == {
            "brand_tone": "warm, upbeat",
            "business_name": "Chen Realty",
        }


class TestEnrichAndFiles:
    async def test_enrich_property_updates_named_deal(
        self, executor, tool_ctx, session_factory, owner_id
    ):
        deal = await make_deal(session_factory, owner_id)

        outcome = await executor.execute(
            "enrich_property",
            {"address": "123 Main St, Austin TX", "deal_id": str(deal.id)},
            tool_ctx,
        )

        assert outcome.result["deal_updated"] is True
        assert outcome.result["property"]["bathrooms"] == 3
        stored = await load_deal(session_factory, owner_id, deal.id)
        assert stored.year_built == 2010

    async def test_enrich_property_without_api_key(
        self, settings, session_factory, property_api, tool_ctx
    ):
        unconfigured = PropertyDataClient(
            settings.model_copy(update={"property_api_key": None}),
            http_client=httpx.AsyncClient(
                transport=property_api.transport(), base_url=settings.property_api_base_url
            ),
        )
        handler = build_handlers(
            PropertyEnrichmentService(unconfigured, session_factory), None, 3600
        )[ToolName.ENRICH_PROPERTY]

        outcome = await handler.run(
            handler.input_model.model_validate({"address": "123 Main St, Austin TX"}), tool_ctx
        )
        await unconfigured.close()

        assert outcome.result == {"error": "Property data API key not configured"}
        assert property_api.requests == []

    async def test_create_file_uploads_and_signs(self, executor, tool_ctx, storage_api, settings):
        outcome = await executor.execute(
            "create_file",
            {"filename": "Q3 pipeline", "format": "csv", "content": "address,stage\n1 Main,lead\n"},
            tool_ctx,
        )

        assert outcome.success
        assert outcome.result["filename"] == "Q3-pipeline.csv"
        assert outcome.result["url"].startswith(f"{settings.supabase_url}/storage/v1/object/sign/")
        assert outcome.result["size"] == len("address,stage\n1 Main,lead\n")
        assert len(storage_api.uploads) == 1

    async def test_create_file_storage_failure(self, executor, tool_ctx, storage_api):
        storage_api.fail_upload = True

        outcome = await executor.execute(
            "create_file", {"filename": "notes.md", "content": "# Notes"}, tool_ctx
        )

        assert outcome.result["error"].startswith("Could not create file")
