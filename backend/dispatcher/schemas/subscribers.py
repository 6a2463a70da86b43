from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

DEFAULT_WEBHOOK_PATH = "/api/webhooks/paystack"
DEFAULT_HEALTH_PATH = "/health"
DEFAULT_VERIFY_PATH = "/api/tickets/verify/{reference}"


class Subscriber(BaseModel):
    """A downstream ticketing system that can own payment references."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    id: str = Field(..., description="Stable unique identifier")
    name: str = Field(..., description="Display name")
    base_url: str
    webhook_path: str = DEFAULT_WEBHOOK_PATH
    health_path: str = DEFAULT_HEALTH_PATH
    verify_path: str = DEFAULT_VERIFY_PATH
    enabled: bool = True
    timeout_ms: int | None = Field(default=None, gt=0)

    @field_validator("id", "name", "base_url")
    @classmethod
    def not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("base_url")
    @classmethod
    def http_address(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("must be an http:// or https:// address")
        return value.rstrip("/")

    @field_validator("verify_path")
    @classmethod
    def has_reference_slot(cls, value: str) -> str:
        if "{reference}" not in value:
            raise ValueError("must contain a {reference} placeholder")
        return value

    @property
    def webhook_url(self) -> str:
        return f"{self.base_url}{self.webhook_path}"

    @property
    def health_url(self) -> str:
        return f"{self.base_url}{self.health_path}"

    def verify_url(self, reference: str) -> str:
        return f"{self.base_url}{self.verify_path.format(reference=reference)}"


class SubscriberList(BaseModel):
    success: bool = True
    systems: list[Subscriber]


class SubscriberAdded(BaseModel):
    success: bool = True
    message: str = "System added successfully"
    system: Subscriber
