from typing import Any

from pydantic import BaseModel, Field


class WebhookPayload(BaseModel, extra="allow"):
    event: str | None = Field(None, description="Event type / name")
    data: Any = Field(None, description="Provider event data")

    @property
    def reference(self) -> str | None:
        if not isinstance(self.data, dict):
            return None
        reference = self.data.get("reference")
        if reference is None or reference == "":
            return None
        return str(reference)
