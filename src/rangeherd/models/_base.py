"""Base model for backend payloads.

Every wire model inherits from :class:`HerdBaseModel` which provides:

* ``alias_generator=to_camel`` so camelCase API keys map
  automatically to snake_case fields.
* A ``model_validator(mode="before")`` that strips sentinel
  values (``""``, ``"--"``, NaN) so the field default is used,
  and applies the per-model ``_KEY_ALIASES``.
* A ``raw`` dict that captures the original payload.
"""

from __future__ import annotations

from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from rangeherd.ingestion.normalize import clean_payload


class HerdBaseModel(BaseModel):
    """Base for backend response and stream payload models."""

    _KEY_ALIASES: ClassVar[dict[str, str]] = {}
    """Alternative payload keys mapped onto the canonical camelCase key."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    raw: dict[str, Any] = Field(default_factory=dict, repr=False)
    """Original payload dict."""

    @model_validator(mode="before")
    @classmethod
    def _clean_values(cls, values: Any) -> Any:
        """Strip sentinel values, apply key aliases, and stash the raw payload."""
        if not isinstance(values, dict):
            return values
        original = dict(values)
        cleaned = clean_payload(original, getattr(cls, "_KEY_ALIASES", {}))

        # Keep an explicitly passed raw= (kwargs construction) untouched.
        if "raw" not in values:
            cleaned["raw"] = original
        return cleaned
