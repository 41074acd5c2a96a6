"""
Typed input records for every tool.

The model's tool arguments are validated here before any handler runs, so
handlers never deal with missing keys or stringly-typed numbers. Validation
failures become structured `{"error": ...}` results in the executor.
"""

import re
import uuid
from datetime import date, datetime
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from caselli.db.models import CONTACT_TYPES, DEAL_STAGES

FILE_FORMATS = {
    "csv": "text/csv",
    "txt": "text/plain",
    "md": "text/markdown",
    "html": "text/html",
    "json": "application/json",
}

SOCIAL_PLATFORMS = ("instagram", "facebook", "linkedin", "x", "tiktok")

TODO_STATUSES = ("pending", "in_progress", "completed")

_PRICE_SUFFIXES = {"k": 1_000, "m": 1_000_000}


def normalize_choice(value: str) -> str:
    """'Under Contract' / 'under-contract' -> 'under_contract'."""
    return re.sub(r"[\s\-]+", "_", value.strip().lower())


def coerce_price(value: Any) -> Optional[float]:
    """
    Accept 450000, "450000", "$450,000", "450k", "1.2M".

    Raises:
        ValueError: For anything that is not a non-negative amount
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"Invalid price: {value!r}")
    if isinstance(value, (int, float)):
        amount = float(value)
    else:
        text = str(value).strip().lower().replace("$", "").replace(",", "").replace(" ", "")
        multiplier = 1
        if text and text[-1] in _PRICE_SUFFIXES:
            multiplier = _PRICE_SUFFIXES[text[-1]]
            text = text[:-1]
        try:
            amount = float(text) * multiplier
        except ValueError:
            raise ValueError(f"Invalid price: {value!r}") from None
    if amount < 0:
        raise ValueError(f"Invalid price: {value!r}")
    return amount


_DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%m/%d/%y", "%B %d, %Y", "%b %d, %Y", "%B %d %Y")


def coerce_date(value: Any) -> Any:
    """Accept ISO dates plus the US formats people type into chat."""
    if value is None or value == "":
        return None
    if isinstance(value, (date, datetime)):
        return value
    text = str(value).strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    # Let pydantic produce its own error for anything else
    return text


Price = Annotated[Optional[float], BeforeValidator(coerce_price)]
FlexibleDate = Annotated[Optional[date], BeforeValidator(coerce_date)]


def _validate_stage(value: Any) -> Any:
    if value is None:
        return None
    stage = normalize_choice(str(value))
    if stage not in DEAL_STAGES:
        raise ValueError(
            f"Invalid stage '{value}'. Valid stages: {', '.join(DEAL_STAGES)}"
        )
    return stage


def _validate_contact_type(value: Any) -> Any:
    if value is None:
        return None
    contact_type = normalize_choice(str(value))
    if contact_type not in CONTACT_TYPES:
        raise ValueError(
            f"Invalid contact type '{value}'. Valid types: {', '.join(CONTACT_TYPES)}"
        )
    return contact_type


class ToolInput(BaseModel):
    """Base for all tool inputs: unknown keys are ignored, strings trimmed."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)


class EmptyInput(ToolInput):
    pass


# ===== Deals =====


class DealFields(ToolInput):
    """Writable deal fields shared by create, update and revert."""

    property_address: Optional[str] = None
    stage: Optional[str] = None
    deal_type: Optional[str] = None
    list_price: Price = None
    contract_price: Price = None
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    closing_date: FlexibleDate = None
    inspection_deadline: FlexibleDate = None
    financing_deadline: FlexibleDate = None
    appraisal_deadline: FlexibleDate = None
    notes: Optional[str] = None

    @field_validator("stage", mode="before")
    @classmethod
    def check_stage(cls, value: Any) -> Any:
        return _validate_stage(value)

    def changes(self) -> Dict[str, Any]:
        """Fields the caller actually supplied with a non-null value."""
        return {
            key: value
            for key, value in self.model_dump(exclude_unset=True).items()
            if value is not None and key in DealFields.model_fields
        }


class CreateDealInput(DealFields):
    property_address: str = Field(min_length=1)
    stage: str = "lead"

    def changes(self) -> Dict[str, Any]:
        return {**super().changes(), "stage": self.stage}


class UpdateDealInput(DealFields):
    deal_id: uuid.UUID

    @model_validator(mode="after")
    def require_a_change(self) -> "UpdateDealInput":
        if not self.changes():
            raise ValueError("No fields to update were provided")
        return self


class GetActiveDealsInput(ToolInput):
    stage: Optional[str] = None

    @field_validator("stage", mode="before")
    @classmethod
    def check_stage(cls, value: Any) -> Any:
        return _validate_stage(value)


class DealLookupInput(ToolInput):
    """Resolve a deal by id or, failing that, by address substring."""

    deal_id: Optional[uuid.UUID] = None
    address: Optional[str] = None


class GetDealDetailsInput(DealLookupInput):
    @model_validator(mode="after")
    def require_identifier(self) -> "GetDealDetailsInput":
        if self.deal_id is None and not self.address:
            raise ValueError("Provide deal_id or address")
        return self


# ===== Contacts =====


class AddContactInput(ToolInput):
    full_name: str = Field(min_length=1, validation_alias=AliasChoices("full_name", "name"))
    contact_type: Optional[str] = "lead"
    email: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    notes: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def require_name(cls, data: Any) -> Any:
        if isinstance(data, dict):
            name = data.get("full_name") or data.get("name")
            if not isinstance(name, str) or not name.strip():
                raise ValueError("Contact name is required")
        return data

    @field_validator("contact_type", mode="before")
    @classmethod
    def check_contact_type(cls, value: Any) -> Any:
        return _validate_contact_type(value)


class UpdateContactInput(ToolInput):
    contact_id: uuid.UUID
    full_name: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("full_name", "name")
    )
    contact_type: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    notes: Optional[str] = None
    last_contacted: FlexibleDate = None

    @field_validator("contact_type", mode="before")
    @classmethod
    def check_contact_type(cls, value: Any) -> Any:
        return _validate_contact_type(value)

    def changes(self) -> Dict[str, Any]:
        return {
            key: value
            for key, value in self.model_dump(exclude={"contact_id"}).items()
            if value is not None
        }


class SearchContactsInput(ToolInput):
    query: str = ""
    contact_type: Optional[str] = None

    @field_validator("contact_type", mode="before")
    @classmethod
    def check_contact_type(cls, value: Any) -> Any:
        return _validate_contact_type(value)


# ===== Drafting =====


class DraftSocialPostInput(DealLookupInput):
    platform: str = "instagram"
    focus: Optional[str] = None

    @field_validator("platform", mode="before")
    @classmethod
    def normalize_platform(cls, value: Any) -> Any:
        platform = normalize_choice(str(value or "instagram"))
        if platform == "twitter":
            platform = "x"
        if platform not in SOCIAL_PLATFORMS:
            raise ValueError(
                f"Unsupported platform '{value}'. Supported: {', '.join(SOCIAL_PLATFORMS)}"
            )
        return platform


class DraftEmailInput(DealLookupInput):
    purpose: Optional[str] = None
    recipient_name: Optional[str] = None


class DraftListingDescriptionInput(DealLookupInput):
    highlights: Optional[str] = None
    max_words: int = Field(default=250, ge=50, le=1000)


# ===== Enrichment & files =====


class EnrichPropertyInput(ToolInput):
    address: str = Field(min_length=1)
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    deal_id: Optional[uuid.UUID] = None


class CreateFileInput(ToolInput):
    """File bodies are stored byte for byte; only the name and format are trimmed."""

    model_config = ConfigDict(str_strip_whitespace=False)

    filename: str = Field(min_length=1, max_length=120)
    content: str
    format: Optional[str] = None

    @field_validator("filename", "format", mode="before")
    @classmethod
    def strip_names(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @model_validator(mode="after")
    def resolve_format(self) -> "CreateFileInput":
        fmt = (self.format or "").lower().lstrip(".")
        if not fmt and "." in self.filename:
            fmt = self.filename.rsplit(".", 1)[1].lower()
        if fmt not in FILE_FORMATS:
            raise ValueError(
                f"Unsupported file format '{fmt or self.format}'. "
                f"Supported: {', '.join(FILE_FORMATS)}"
            )
        self.format = fmt
        return self


# ===== Todos =====


class TodoItemInput(ToolInput):
    content: str = Field(min_length=1)
    active_form: str = Field(
        min_length=1, validation_alias=AliasChoices("active_form", "activeForm")
    )


class CreateTodosInput(ToolInput):
    todos: List[TodoItemInput] = Field(min_length=1, max_length=20)


class UpdateTodoInput(ToolInput):
    index: int = Field(ge=0)
    status: Literal["pending", "in_progress", "completed"]
