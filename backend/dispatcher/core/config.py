from functools import lru_cache

from dispatcher.schemas.subscribers import Subscriber
from pydantic_settings import BaseSettings

MMV_BASE_URL = "https://api.cuministrymmv.org"


class Settings(BaseSettings):
    paystack_secret_key: str
    provider: str = "paystack"
    signature_header: str = "x-paystack-signature"
    user_agent: str = "Paystack-Webhook-Dispatcher/1.0"
    lookup_timeout_ms: int = 5000
    forward_timeout_ms: int = 30000
    health_timeout_ms: int = 5000
    cbs_base_url: str = "https://cbs-ticketing.com"
    subscribers: list[Subscriber] = []
    allowed_origins: str = "*"
    log_level: str = "INFO"
    log_json: bool = True
    log_dir: str | None = None
    max_body_size: int = 1_048_576  # 1 MiB

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Fall back to the built-in ticketing systems if SUBSCRIBERS is not set
        if not self.subscribers:
            self.subscribers = default_subscribers(self.cbs_base_url)

    model_config = {"env_file": ".env", "extra": "ignore"}


def default_subscribers(cbs_base_url: str) -> list[Subscriber]:
    return [
        Subscriber(
            id="cbs-ticketing",
            name="CBS Ticketing",
            base_url=cbs_base_url,
            timeout_ms=30000,
        ),
        Subscriber(id="mmv-ticketing", name="MMV Ticketing", base_url=MMV_BASE_URL),
    ]


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]
