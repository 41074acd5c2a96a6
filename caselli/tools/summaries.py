"""
Human-readable summaries for tool activity.

These strings are what the browser shows on tool_start/tool_done and what
the tool-call log stores in message metadata. They are derived from raw
inputs and results, which themselves never reach the client.
"""

from typing import Any, Dict

from caselli.tools.catalog import WEB_SEARCH_TOOL, ToolName
from caselli.utils.sse_utils import truncate_text

STATUS_LABELS = {
    ToolName.GET_ACTIVE_DEALS.value: "Checking your pipeline",
    ToolName.GET_DEAL_DETAILS.value: "Pulling up the deal",
    ToolName.CHECK_UPCOMING_DEADLINES.value: "Checking deadlines",
    ToolName.SEARCH_CONTACTS.value: "Searching contacts",
    ToolName.CREATE_DEAL.value: "Creating deal",
    ToolName.UPDATE_DEAL.value: "Updating deal",
    ToolName.ADD_CONTACT.value: "Adding contact",
    ToolName.UPDATE_CONTACT.value: "Updating contact",
    ToolName.DRAFT_SOCIAL_POST.value: "Drafting social post",
    ToolName.DRAFT_EMAIL.value: "Drafting email",
    ToolName.DRAFT_LISTING_DESCRIPTION.value: "Drafting listing description",
    ToolName.ENRICH_PROPERTY.value: "Looking up property details",
    ToolName.CREATE_FILE.value: "Creating file",
    ToolName.CREATE_TODOS.value: "Planning tasks",
    ToolName.UPDATE_TODO.value: "Updating tasks",
    WEB_SEARCH_TOOL: "Searching the web",
}

# First input key present wins
_INPUT_KEYS = (
    "property_address",
    "address",
    "full_name",
    "name",
    "query",
    "filename",
    "platform",
    "stage",
    "deal_id",
    "contact_id",
)


def status_label(tool: str) -> str:
    return STATUS_LABELS.get(tool, f"Running {tool.replace('_', ' ')}")


def summarize_input(tool: str, tool_input: Dict[str, Any]) -> str:
    if tool == ToolName.CREATE_TODOS.value:
        count = len(tool_input.get("todos") or [])
        return f"{count} task{'s' if count != 1 else ''}"
    if tool == ToolName.UPDATE_TODO.value:
        return f"Task {tool_input.get('index')} -> {tool_input.get('status')}"
    for key in _INPUT_KEYS:
        value = tool_input.get(key)
        if value:
            return truncate_text(str(value), 80)
    return ""


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'' if count == 1 else 's'}"


def summarize_result(tool: str, result: Dict[str, Any]) -> str:
    """One-line outcome, e.g. 'Found 3 contacts' or 'Error: Deal not found'."""
    if "error" in result:
        return truncate_text(f"Error: {result['error']}", 160)

    if tool == ToolName.GET_ACTIVE_DEALS.value:
        return f"Found {_plural(result.get('count', 0), 'active deal')}"
    if tool == ToolName.GET_DEAL_DETAILS.value:
        return f"Loaded {result.get('deal', {}).get('property_address', 'deal')}"
    if tool == ToolName.CHECK_UPCOMING_DEADLINES.value:
        count = result.get("count", 0)
        return f"{_plural(count, 'deadline')} this week" if count else "No deadlines this week"
    if tool == ToolName.SEARCH_CONTACTS.value:
        return f"Found {_plural(result.get('count', 0), 'contact')}"
    if tool == ToolName.CREATE_DEAL.value:
        address = result.get("deal", {}).get("property_address", "")
        enrichment = result.get("enrichment") or {}
        suffix = " with property details" if enrichment.get("property") else ""
        return f"Created deal for {address}{suffix}"
    if tool == ToolName.UPDATE_DEAL.value:
        fields = ", ".join(result.get("updated_fields", []))
        return f"Updated {fields}" if fields else "Updated deal"
    if tool == ToolName.ADD_CONTACT.value:
        return f"Added {result.get('contact', {}).get('full_name', 'contact')}"
    if tool == ToolName.UPDATE_CONTACT.value:
        return f"Updated {result.get('contact', {}).get('full_name', 'contact')}"
    if tool in (
        ToolName.DRAFT_SOCIAL_POST.value,
        ToolName.DRAFT_EMAIL.value,
        ToolName.DRAFT_LISTING_DESCRIPTION.value,
    ):
        if result.get("no_deal_found"):
            return "No matching deal, drafting from conversation"
        return f"Using details for {result.get('deal', {}).get('property_address', 'deal')}"
    if tool == ToolName.ENRICH_PROPERTY.value:
        prop = result.get("property", {})
        parts = []
        if prop.get("bedrooms") is not None:
            parts.append(f"{prop['bedrooms']} bd")
        if prop.get("bathrooms") is not None:
            parts.append(f"{prop['bathrooms']} ba")
        if prop.get("square_footage") is not None:
            parts.append(f"{prop['square_footage']:,} sqft")
        return "Found " + ", ".join(parts) if parts else "Property details found"
    if tool == ToolName.CREATE_FILE.value:
        return f"Created {result.get('filename', 'file')}"
    if tool in (ToolName.CREATE_TODOS.value, ToolName.UPDATE_TODO.value):
        todos = result.get("todos", [])
        done = sum(1 for todo in todos if todo.get("status") == "completed")
        return f"{done}/{len(todos)} tasks complete"
    return "Done"
