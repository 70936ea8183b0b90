from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class MailboxSettings(BaseModel):
    """Process settings loaded from ``<home>/settings.yaml``."""

    poll_interval_seconds: float = Field(default=5.0, gt=0)
    db_filename: str = "mailbox.db"
    busy_timeout_seconds: float = Field(default=5.0, ge=0)
    log_level: str = "INFO"
    developer_mode: bool = False

    model_config = ConfigDict(extra="ignore")
