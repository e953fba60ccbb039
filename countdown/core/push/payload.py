"""Notification payload carried inside the encrypted Web Push body."""

import json

from pydantic import BaseModel, Field


class NotificationPayload(BaseModel):
    """What the service worker shows.

    ``tag`` lets the client replace a stacked notification of the same kind
    instead of showing duplicates.
    """

    title: str = Field(max_length=200)
    body: str = Field(default="", max_length=1000)
    url: str = Field(default="/", description="Deep-link opened on click")
    tag: str = Field(default="notification", description="Client-side replacement key")

    def to_bytes(self) -> bytes:
        return json.dumps(self.model_dump(), ensure_ascii=False, separators=(",", ":")).encode("utf-8")
