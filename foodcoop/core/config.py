from __future__ import annotations

from decimal import Decimal
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="FC_", extra="ignore")

    app_name: str = "Foodcoop Orders"
    env: str = "dev"

    database_url: str = "sqlite+pysqlite:///./foodcoop.db"

    log_level: str = "INFO"

    currency: str = "EUR"
    price_markup_percent: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Markup applied on top of the gross price for the foodcoop price",
    )
    date_format: str = "%d.%m.%Y"

    # Messaging backend: log | outbox
    messenger_backend: str = "log"
    order_finished_template: str = "order_finished"

    system_actor_id: str = "system"

    def model_post_init(self, __context) -> None:
        if self.messenger_backend not in {"log", "outbox"}:
            raise ValueError(f"unsupported messenger backend: {self.messenger_backend}")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
