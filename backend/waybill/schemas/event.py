"""Pydantic schemas for the transport event trail."""

from datetime import datetime

from pydantic import BaseModel


class TransportEventOut(BaseModel):
    id: str
    reference_type: str
    reference_id: str
    event_type: str
    event_time: datetime
    stop_id: str | None
    latitude: float | None
    longitude: float | None
    location_text: str | None
    actor_type: str
    actor_id: str | None
    description: str | None
    payload: dict
    source: str

    model_config = {"from_attributes": True}
