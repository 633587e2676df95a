from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    db_host: str = Field("mariadb", alias="DB_HOST")
    db_port: int = Field(3306, alias="DB_PORT")
    db_user: str = Field("shop", alias="DB_USER")
    db_password: str = Field("shop", alias="DB_PASSWORD")
    db_name: str = Field("bundlecart", alias="DB_NAME")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    store_currency: str = Field(
        "USD",
        alias="STORE_CURRENCY",
        description="Default ISO 4217 currency code for new carts.",
    )
    price_decimals: int = Field(
        2,
        alias="PRICE_DECIMALS",
        description="Minor-unit decimals used when allocating bundle prices, at most 2 to match the stored totals.",
    )
    form_secret_key: str = Field(
        "change-me",
        alias="FORM_SECRET_KEY",
        description="Secret used to sign add-to-cart form tokens.",
    )
    form_token_ttl_seconds: int = Field(
        86400,
        alias="FORM_TOKEN_TTL_SECONDS",
        description="How long an add-to-cart form token stays valid.",
    )
    product_search_limit: int = Field(
        50,
        alias="PRODUCT_SEARCH_LIMIT",
        description="Maximum number of products returned by the bundle builder search.",
    )

    @field_validator("store_currency")
    @classmethod
    def normalise_currency(cls, value: str) -> str:
        return (value or "USD").strip().upper()

    @field_validator("price_decimals")
    @classmethod
    def clamp_decimals(cls, value: int) -> int:
        # Line and cart totals are stored as Numeric(12, 2).
        if value < 0:
            return 0
        return min(value, 2)

    @property
    def db_async_url(self) -> str:
        return (
            f"mysql+asyncmy://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )

    @property
    def db_sync_url(self) -> str:
        return (
            f"mysql+pymysql://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
