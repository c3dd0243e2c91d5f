"""Base model shared by every wire type.

API clients speak camelCase (``specialistId``); the hosted backend stores
snake_case columns (``specialist_id``). Models accept either spelling on
input and pick the spelling on output.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """camelCase aliases, populate-by-name enabled."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> dict[str, Any]:
        """Serialize for API clients (camelCase)."""
        return self.model_dump(mode="json", by_alias=True)

    def to_backend(self) -> dict[str, Any]:
        """Serialize for the backend (snake_case, unset optionals dropped)."""
        return self.model_dump(mode="json", exclude_none=True)
