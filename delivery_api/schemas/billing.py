from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class WebhookAck(BaseModel):
    """Acknowledgement returned to Stripe."""
    received: bool = Field(True)
    duplicate: bool = Field(False, description="True when the event id was already processed")
    event_type: Optional[str] = None
