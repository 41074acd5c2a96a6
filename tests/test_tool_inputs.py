"""
Tests for tool input validation and coercion.
"""

import uuid
from datetime import date

import pytest
from pydantic import ValidationError

from caselli.tools.catalog import ToolName, provider_tools
from caselli.tools.inputs import (
    AddContactInput,
    CreateDealInput,
    CreateFileInput,
    CreateTodosInput,
    GetDealDetailsInput,
    UpdateContactInput,
    UpdateDealInput,
    coerce_price,
)


class TestPrices:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            (450000, 450000.0),
            ("450000", 450000.0),
            ("$450,000", 450000.0),
            ("450k", 450000.0),
            ("1.2M", 1200000.0),
            ("", None),
            (None, None),
        ],
    )
    def test_coerce_price(self, raw, expected):
        assert coerce_price(raw) == expected

    @pytest.mark.parametrize("raw", ["cheap", "-5", True])
    def test_invalid_prices_rejected(self, raw):
        with pytest.raises(ValueError):
            coerce_price(raw)


class TestDealInputs:
    def test_create_defaults_to_lead(self):
        params = CreateDealInput.model_validate(
            {"property_address": "123 Main St, Austin TX", "list_price": "$450k"}
        )
        assert params.stage == "lead"
        assert params.changes() == {
            "property_address": "123 Main St, Austin TX",
            "stage": "lead",
            "list_price": 450000.0,
        }

    def test_explicit_stage_is_kept_in_changes(self):
        params = CreateDealInput.model_validate({"property_address": "9 Oak Ln", "stage": "under_contract"})
        assert params.changes() == {"property_address": "9 Oak Ln", "stage": "under_contract"}

    def test_stage_is_normalized(self):
        params = CreateDealInput.model_validate(
            {"property_address": "9 Oak Ln", "stage": "Under Contract"}
        )
        assert params.stage == "under_contract"

    def test_invalid_stage_lists_valid_values(self):
        with pytest.raises(ValidationError) as exc_info:
            UpdateDealInput.model_validate({"deal_id": str(uuid.uuid4()), "stage": "won"})
        message = str(exc_info.value)
        assert "Invalid stage 'won'" in message
        assert "under_contract" in message

    def test_update_requires_a_change(self):
        with pytest.raises(ValidationError, match="No fields to update"):
            UpdateDealInput.model_validate({"deal_id": str(uuid.uuid4())})

    def test_update_changes_only_supplied_fields(self):
        params = UpdateDealInput.model_validate(
            {"deal_id": str(uuid.uuid4()), "closing_date": "03/15/2026", "notes": None}
        )
        assert params.changes() == {"closing_date": date(2026, 3, 15)}

    def test_unknown_keys_are_ignored(self):
        params = CreateDealInput.model_validate(
            {"property_address": "9 Oak Ln", "favorite_color": "blue"}
        )
        assert "favorite_color" not in params.changes()

    def test_deal_details_needs_id_or_address(self):
        with pytest.raises(ValidationError):
            GetDealDetailsInput.model_validate({})
        assert GetDealDetailsInput.model_validate({"address": "Main"}).address == "Main"


class TestContactInputs:
    def test_name_is_required(self):
        with pytest.raises(ValidationError, match="Contact name is required"):
            AddContactInput.model_validate({"email": "sarah@example.com"})

    def test_blank_name_is_rejected(self):
        with pytest.raises(ValidationError):
            AddContactInput.model_validate({"full_name": "   "})

    def test_name_alias(self):
        params = AddContactInput.model_validate({"name": "Sarah Chen", "contact_type": "Past Client"})
        assert params.full_name == "Sarah Chen"
        assert params.contact_type == "past_client"

    def test_invalid_contact_type(self):
        with pytest.raises(ValidationError, match="Invalid contact type"):
            AddContactInput.model_validate({"full_name": "Sarah", "contact_type": "friend"})

    def test_update_contact_changes(self):
        params = UpdateContactInput.model_validate(
            {"contact_id": str(uuid.uuid4()), "phone": "512-555-0100"}
        )
        assert params.changes() == {"phone": "512-555-0100"}


class TestFileAndTodoInputs:
    def test_format_inferred_from_filename(self):
        params = CreateFileInput.model_validate({"filename": "pipeline.csv", "content": "a,b"})
        assert params.format == "csv"

    def test_file_body_is_kept_verbatim(self):
        body = "  indented\n\ntrailing newline\n"
        params = CreateFileInput.model_validate(
            {"filename": "  notes.md ", "format": " md ", "content": body}
        )
        assert params.content == body
        assert params.filename == "notes.md"
        assert params.format == "md"

    def test_unsupported_format(self):
        with pytest.raises(ValidationError, match="Unsupported file format"):
            CreateFileInput.model_validate({"filename": "deck.pptx", "content": "x"})

    def test_todos_accept_camel_case_active_form(self):
        params = CreateTodosInput.model_validate(
            {"todos": [{"content": "Pull comps", "activeForm": "Pulling comps"}]}
        )
        assert params.todos[0].active_form == "Pulling comps"

    def test_todos_must_not_be_empty(self):
        with pytest.raises(ValidationError):
            CreateTodosInput.model_validate({"todos": []})


class TestCatalog:
    def test_every_tool_has_a_schema(self):
        tools = provider_tools(web_search_max_uses=5)
        names = {tool["name"] for tool in tools}

        assert {name.value for name in ToolName} <= names
        assert "web_search" in names

    def test_parse_rejects_unknown_names(self):
        assert ToolName.parse("create_deal") is ToolName.CREATE_DEAL
        with pytest.raises(ValueError):
            ToolName.parse("delete_everything")
