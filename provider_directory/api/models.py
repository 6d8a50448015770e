"""Pydantic request models for the Provider Directory API."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from ..algorithms.entry_types import ENTRY_TYPES

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


def _trim_or_none(value: Any) -> Any:
    """Surrounding whitespace is dropped; blank strings count as absent."""
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


class _TrimmedModel(BaseModel):
    @field_validator("*", mode="before")
    @classmethod
    def _trim(cls, value: Any) -> Any:
        return _trim_or_none(value)


# ---------------------------------------------------------------------------
# Entry parts
# ---------------------------------------------------------------------------


class AddressModel(_TrimmedModel):
    city: str = Field(..., max_length=100, description="City (required)")
    plz: str | None = Field(None, max_length=10, description="Postal code")
    street: str | None = Field(None, max_length=100)
    house: str | None = Field(None, max_length=10, description="House number")


class AddressEditModel(_TrimmedModel):
    city: str | None = Field(None, max_length=100)
    plz: str | None = Field(None, max_length=10)
    street: str | None = Field(None, max_length=100)
    house: str | None = Field(None, max_length=10)


class MetaModel(_TrimmedModel):
    offers: list[str] | None = Field(None, description="Offer tags, type dependent")
    attributes: list[str] | None = Field(None, description="Attribute tags, type dependent")
    specials: str | None = Field(None, max_length=280, description="Free text")
    min_age: int | None = Field(None, ge=0, le=99, description="Groups only")
    subject: str | None = Field(None, description="Therapists only")


def _check_type_and_meta(entry_type_name: str | None, meta: MetaModel | None) -> None:
    if entry_type_name is None:
        return
    entry_type = ENTRY_TYPES.get(entry_type_name)
    if entry_type is None:
        raise ValueError(f"unknown entry type '{entry_type_name}'")
    if meta is not None:
        errors = entry_type.validate_meta(meta.model_dump())
        if errors:
            raise ValueError("; ".join(errors))


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class EntryRequest(_TrimmedModel):
    """A new listing as submitted by the public."""

    type: str = Field(..., description="Entry type, see /api/entry-types")
    name: str = Field(..., max_length=50)
    first_name: str | None = Field(None, min_length=2, max_length=30)
    last_name: str | None = Field(None, min_length=2, max_length=30)
    email: str | None = Field(None, pattern=EMAIL_PATTERN, max_length=254)
    website: str | None = Field(None, min_length=3, max_length=500)
    telephone: str | None = Field(None, min_length=5, max_length=30)
    accessible: Literal["yes", "no", "unknown"] | None = None
    address: AddressModel
    meta: MetaModel = Field(default_factory=MetaModel)

    @model_validator(mode="after")
    def _validate_for_type(self) -> "EntryRequest":
        _check_type_and_meta(self.type, self.meta)
        return self


class EntryEditRequest(_TrimmedModel):
    """Admin edit. Only fields that are sent are changed."""

    type: str | None = None
    name: str | None = Field(None, max_length=50)
    first_name: str | None = Field(None, min_length=2, max_length=30)
    last_name: str | None = Field(None, min_length=2, max_length=30)
    email: str | None = Field(None, pattern=EMAIL_PATTERN, max_length=254)
    website: str | None = Field(None, min_length=3, max_length=500)
    telephone: str | None = Field(None, min_length=5, max_length=30)
    accessible: Literal["yes", "no", "unknown"] | None = None
    address: AddressEditModel | None = None
    meta: MetaModel | None = None

    @model_validator(mode="after")
    def _validate_for_type(self) -> "EntryEditRequest":
        if "type" in self.model_fields_set and self.type is None:
            raise ValueError("type cannot be removed")
        if "name" in self.model_fields_set and self.name is None:
            raise ValueError("name cannot be removed")
        if self.address is not None and "city" in self.address.model_fields_set and self.address.city is None:
            raise ValueError("address.city cannot be removed")
        # meta is checked after merging with the stored entry
        _check_type_and_meta(self.type, None)
        return self

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class FilterFullRequest(BaseModel):
    filter: dict[str, Any] = Field(
        default_factory=dict,
        description="Admin filter expression: {conditions: [...], location: {...}}",
    )
    page: int = Field(0, ge=0)
