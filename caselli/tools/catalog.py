"""
Tool catalog: the closed set of tool names and the schemas sent to the model.

Schemas are written by hand rather than generated from the input models so
descriptions can speak to the model directly. The input models in
inputs.py remain the source of truth for validation.
"""

from enum import Enum
from typing import Any, Dict, List

from caselli.db.models import CONTACT_TYPES, DEAL_STAGES
from caselli.tools.inputs import FILE_FORMATS, SOCIAL_PLATFORMS, TODO_STATUSES


class ToolName(str, Enum):
    GET_ACTIVE_DEALS = "get_active_deals"
    GET_DEAL_DETAILS = "get_deal_details"
    CHECK_UPCOMING_DEADLINES = "check_upcoming_deadlines"
    SEARCH_CONTACTS = "search_contacts"
    CREATE_DEAL = "create_deal"
    UPDATE_DEAL = "update_deal"
    ADD_CONTACT = "add_contact"
    UPDATE_CONTACT = "update_contact"
    DRAFT_SOCIAL_POST = "draft_social_post"
    DRAFT_EMAIL = "draft_email"
    DRAFT_LISTING_DESCRIPTION = "draft_listing_description"
    ENRICH_PROPERTY = "enrich_property"
    CREATE_FILE = "create_file"
    CREATE_TODOS = "create_todos"
    UPDATE_TODO = "update_todo"

    @classmethod
    def parse(cls, name: str) -> "ToolName":
        """Raises ValueError for names outside the catalog."""
        return cls(name)


WEB_SEARCH_TOOL = "web_search"

TODO_TOOLS = frozenset({ToolName.CREATE_TODOS, ToolName.UPDATE_TODO})

DRAFTING_TOOLS = {
    ToolName.DRAFT_SOCIAL_POST: "social_post",
    ToolName.DRAFT_EMAIL: "email",
    ToolName.DRAFT_LISTING_DESCRIPTION: "listing_description",
}

_DEAL_FIELD_PROPERTIES: Dict[str, Any] = {
    "property_address": {
        "type": "string",
        "description": "Full street address including city and state, e.g. '123 Main St, Austin TX'",
    },
    "stage": {"type": "string", "enum": list(DEAL_STAGES)},
    "deal_type": {
        "type": "string",
        "description": "buyer, seller, dual, lease or referral",
    },
    "list_price": {"type": "number", "description": "List price in dollars"},
    "contract_price": {"type": "number", "description": "Contract price in dollars"},
    "client_name": {"type": "string"},
    "client_email": {"type": "string"},
    "client_phone": {"type": "string"},
    "closing_date": {"type": "string", "description": "YYYY-MM-DD"},
    "inspection_deadline": {"type": "string", "description": "YYYY-MM-DD"},
    "financing_deadline": {"type": "string", "description": "YYYY-MM-DD"},
    "appraisal_deadline": {"type": "string", "description": "YYYY-MM-DD"},
    "notes": {"type": "string"},
}

_DEAL_LOOKUP_PROPERTIES: Dict[str, Any] = {
    "deal_id": {"type": "string", "description": "Deal id, when known"},
    "address": {
        "type": "string",
        "description": "Address or partial address to match when the id is unknown",
    },
}

_CONTACT_PROPERTIES: Dict[str, Any] = {
    "full_name": {"type": "string"},
    "contact_type": {"type": "string", "enum": list(CONTACT_TYPES)},
    "email": {"type": "string"},
    "phone": {"type": "string"},
    "company": {"type": "string"},
    "notes": {"type": "string"},
}


def _schema(properties: Dict[str, Any], required: List[str] = ()) -> Dict[str, Any]:
    schema: Dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = list(required)
    return schema


TOOL_DEFINITIONS: Dict[ToolName, Dict[str, Any]] = {
    ToolName.GET_ACTIVE_DEALS: {
        "description": "List the agent's active deals (everything not closed or fell through), most recently updated first.",
        "input_schema": _schema({"stage": {"type": "string", "enum": list(DEAL_STAGES)}}),
    },
    ToolName.GET_DEAL_DETAILS: {
        "description": "Get full details for one deal by id or by address.",
        "input_schema": _schema(_DEAL_LOOKUP_PROPERTIES),
    },
    ToolName.CHECK_UPCOMING_DEADLINES: {
        "description": "List inspection, financing, appraisal and closing dates on active deals falling within the next 7 days.",
        "input_schema": _schema({}),
    },
    ToolName.SEARCH_CONTACTS: {
        "description": "Search contacts by name, email, phone or company.",
        "input_schema": _schema(
            {
                "query": {"type": "string"},
                "contact_type": {"type": "string", "enum": list(CONTACT_TYPES)},
            }
        ),
    },
    ToolName.CREATE_DEAL: {
        "description": (
            "Create a new deal. Property details (beds, baths, square footage, year built) "
            "are looked up automatically when the address includes city and state."
        ),
        "input_schema": _schema(_DEAL_FIELD_PROPERTIES, ["property_address"]),
    },
    ToolName.UPDATE_DEAL: {
        "description": "Update fields on an existing deal. Only pass the fields that change.",
        "input_schema": _schema(
            {"deal_id": {"type": "string"}, **_DEAL_FIELD_PROPERTIES}, ["deal_id"]
        ),
    },
    ToolName.ADD_CONTACT: {
        "description": "Add a contact (lead, client, vendor, etc.).",
        "input_schema": _schema(_CONTACT_PROPERTIES, ["full_name"]),
    },
    ToolName.UPDATE_CONTACT: {
        "description": "Update fields on an existing contact. Only pass the fields that change.",
        "input_schema": _schema(
            {
                "contact_id": {"type": "string"},
                **_CONTACT_PROPERTIES,
                "last_contacted": {"type": "string", "description": "YYYY-MM-DD"},
            },
            ["contact_id"],
        ),
    },
    ToolName.DRAFT_SOCIAL_POST: {
        "description": "Gather deal details for a social media post. Write the post yourself in your reply.",
        "input_schema": _schema(
            {
                **_DEAL_LOOKUP_PROPERTIES,
                "platform": {"type": "string", "enum": list(SOCIAL_PLATFORMS)},
                "focus": {"type": "string", "description": "Angle, e.g. just listed, open house, sold"},
            }
        ),
    },
    ToolName.DRAFT_EMAIL: {
        "description": "Gather deal details for an email. Write the email yourself in your reply.",
        "input_schema": _schema(
            {
                **_DEAL_LOOKUP_PROPERTIES,
                "purpose": {"type": "string"},
                "recipient_name": {"type": "string"},
            }
        ),
    },
    ToolName.DRAFT_LISTING_DESCRIPTION: {
        "description": "Gather property details for an MLS listing description. Write the description yourself in your reply.",
        "input_schema": _schema(
            {
                **_DEAL_LOOKUP_PROPERTIES,
                "highlights": {"type": "string"},
                "max_words": {"type": "integer", "minimum": 50, "maximum": 1000},
            }
        ),
    },
    ToolName.ENRICH_PROPERTY: {
        "description": "Look up public-record property data for an address; saves it onto the deal when deal_id is given.",
        "input_schema": _schema(
            {
                "address": {"type": "string"},
                "city": {"type": "string"},
                "state": {"type": "string", "description": "Two-letter state code"},
                "zip_code": {"type": "string"},
                "deal_id": {"type": "string"},
            },
            ["address"],
        ),
    },
    ToolName.CREATE_FILE: {
        "description": "Create a downloadable file (spreadsheet, document, etc.) and return a link.",
        "input_schema": _schema(
            {
                "filename": {"type": "string"},
                "content": {"type": "string"},
                "format": {"type": "string", "enum": list(FILE_FORMATS)},
            },
            ["filename", "content", "format"],
        ),
    },
    ToolName.CREATE_TODOS: {
        "description": "Create a visible task list at the start of a multi-step request.",
        "input_schema": _schema(
            {
                "todos": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "content": {"type": "string", "description": "Imperative, e.g. 'Create the deal'"},
                            "active_form": {"type": "string", "description": "Present continuous, e.g. 'Creating the deal'"},
                        },
                        "required": ["content", "active_form"],
                    },
                }
            },
            ["todos"],
        ),
    },
    ToolName.UPDATE_TODO: {
        "description": "Change one task's status. Keep at most one task in_progress.",
        "input_schema": _schema(
            {
                "index": {"type": "integer", "minimum": 0},
                "status": {"type": "string", "enum": list(TODO_STATUSES)},
            },
            ["index", "status"],
        ),
    },
}


def provider_tools(web_search_max_uses: int) -> List[Dict[str, Any]]:
    """Tool list in the provider's request format, web search last."""
    tools = [
        {"name": name.value, **definition}
        for name, definition in TOOL_DEFINITIONS.items()
    ]
    tools.append(
        {
            "type": "web_search_20250305",
            "name": WEB_SEARCH_TOOL,
            "max_uses": web_search_max_uses,
        }
    )
    return tools
