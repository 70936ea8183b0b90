"""Mailbox data contracts."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class MailMessage(BaseModel):
    """A stored message. Immutable; ``read`` reflects the row at fetch time."""

    id: int
    recipient: str
    sender: str
    body: str
    created_at: int = Field(description="Epoch milliseconds; ordering key.")
    read: bool = False

    model_config = ConfigDict(extra="forbid", frozen=True)


class WatchStatus(BaseModel):
    recipient: str
    watched: bool = False
    ref_count: int = 0
    unique_subscriber_count: int = 0
    instructions: str = ""

    model_config = ConfigDict(extra="forbid")
