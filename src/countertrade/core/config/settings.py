from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import AliasChoices, Field, SecretStr, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from countertrade.errors import ConfigurationError

AccountName = Literal["trading", "counter"]

# Bybit v5 retCode for "ab not enough for new order"
BYBIT_INSUFFICIENT_BALANCE = 110007


class AppSettings(BaseSettings):
    """
    Process-wide configuration.

    Credentials keep the plain environment names the bot has always used
    (TRADING_SUBACCOUNT_API_KEY, ...). Everything else is prefixed with
    COUNTERTRADE_.
    """

    model_config = SettingsConfigDict(
        env_prefix="COUNTERTRADE_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    # ---- Credentials -------------------------------------------------

    trading_api_key: SecretStr = Field(validation_alias=AliasChoices("TRADING_SUBACCOUNT_API_KEY"))
    trading_api_secret: SecretStr = Field(validation_alias=AliasChoices("TRADING_SUBACCOUNT_API_SECRET"))

    counter_api_key: SecretStr = Field(validation_alias=AliasChoices("COUNTERTRADING_SUBACCOUNT_API_KEY"))
    counter_api_secret: SecretStr = Field(validation_alias=AliasChoices("COUNTERTRADING_SUBACCOUNT_API_SECRET"))

    # ---- Notifications -----------------------------------------------

    telegram_bot_token: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("TELEGRAM_BOT_TOKEN"),
    )
    telegram_channel_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("TELEGRAM_CHANNEL_ID"),
    )

    # ---- Exchange ----------------------------------------------------

    mainnet: bool = Field(default=False, description="Use production endpoints instead of testnet")
    use_bybit_global: bool = Field(default=True, description="Use the bybitglobal.com hosts")

    coin: str = Field(default="USDT", description="Coin whose equity drives sizing")
    category: Literal["linear"] = "linear"

    recv_window: int = Field(default=5000, gt=0, description="Bybit recv window (ms)")
    http_timeout: float = Field(default=10.0, gt=0, description="REST timeout (s)")
    reconnect_timeout: float = Field(default=5.0, gt=0, description="Stream reconnect delay (s)")
    insufficient_balance_code: int = BYBIT_INSUFFICIENT_BALANCE

    # ---- Logging & journal -------------------------------------------

    log_level: str = "INFO"
    log_file: Path | None = Field(default=Path("countertrade-bot.log"))
    journal_path: Path | None = Field(default=None, description="Append-only JSONL outcome journal")

    @field_validator("telegram_bot_token", "telegram_channel_id", "journal_path", "log_file", mode="before")
    @classmethod
    def blank_is_unset(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("trading_api_key", "trading_api_secret", "counter_api_key", "counter_api_secret")
    @classmethod
    def credential_not_blank(cls, v: SecretStr) -> SecretStr:
        if not v.get_secret_value().strip():
            raise ValueError("must not be empty")
        return v

    @model_validator(mode="after")
    def telegram_needs_channel(self) -> "AppSettings":
        if self.telegram_bot_token is not None and not self.telegram_channel_id:
            raise ValueError("TELEGRAM_CHANNEL_ID is not set but TELEGRAM_BOT_TOKEN is")
        return self

    # ---- Derived -----------------------------------------------------

    @property
    def telegram_enabled(self) -> bool:
        return self.telegram_bot_token is not None

    @property
    def network(self) -> str:
        return "mainnet" if self.mainnet else "testnet"

    @property
    def rest_base_url(self) -> str:
        domain = "bybitglobal.com" if self.use_bybit_global else "bybit.com"
        host = "api" if self.mainnet else "api-testnet"
        return f"https://{host}.{domain}"

    @property
    def ws_private_url(self) -> str:
        domain = "bybitglobal.com" if self.use_bybit_global else "bybit.com"
        host = "stream" if self.mainnet else "stream-testnet"
        return f"wss://{host}.{domain}/v5/private"

    def credentials(self, account: AccountName) -> tuple[str, str]:
        if account == "trading":
            return self.trading_api_key.get_secret_value(), self.trading_api_secret.get_secret_value()
        return self.counter_api_key.get_secret_value(), self.counter_api_secret.get_secret_value()


def load_settings(**overrides: Any) -> AppSettings:
    """
    Build settings from the environment (plus explicit overrides).

    Missing credentials are a configuration error: the process must not start.
    """
    try:
        return AppSettings(**overrides)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'settings'}: {err['msg']}" for err in e.errors()
        )
        raise ConfigurationError(f"invalid configuration: {problems}") from e
