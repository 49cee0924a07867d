"""Pydantic models for SportsGameOdds API responses."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Events are consumed as opaque payloads; their field names vary by league.
RawEvent = dict[str, Any]


class EventsPage(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    success: bool = False
    # Kept loose so one malformed event is rejected by the normalizer, not here.
    data: list[Any] = Field(default_factory=list)
    next_cursor: str | None = Field(default=None, alias="nextCursor")
