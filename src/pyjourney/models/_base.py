"""Base model shared by every pyjourney record.

:class:`JourneyBaseModel` provides:

* ``alias_generator=to_camel`` so camelCase wire keys (``journeyId``,
  ``dbJourneyId``) map automatically to snake_case fields, while
  ``populate_by_name`` keeps Python-side construction by field name.
* Frozen instances: records are immutable once validated; updates go
  through ``model_copy(update=...)``.
* A ``model_validator(mode="before")`` that drops ``None`` and blank
  string values so the field default is used.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel


class JourneyBaseModel(BaseModel):
    """Base for pyjourney records."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    @model_validator(mode="before")
    @classmethod
    def _drop_blank_values(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        return {
            key: value
            for key, value in values.items()
            if value is not None and not (isinstance(value, str) and not value.strip())
        }
