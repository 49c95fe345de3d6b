"""Application configuration via environment variables."""

from __future__ import annotations

import logging

from pydantic_settings import BaseSettings

log = logging.getLogger("backoffice.config")


class Settings(BaseSettings):
    # Telegram
    telegram_bot_token: str = ""
    telegram_api_url: str = "https://api.telegram.org"
    telegram_webhook_secret: str = ""

    # Admin auth
    admin_api_key: str = ""

    # Storage: empty data_dir keeps everything in memory
    data_dir: str = ""

    # Wizard sessions
    session_idle_timeout_minutes: float = 30
    session_sweep_interval_seconds: float = 60

    # Chat history kept per user
    message_history_per_user: int = 200

    # Billing
    hourly_rate: float = 40.0
    default_vat_rate: float = 21.0
    invoice_due_days: int = 30
    invoice_series: str = "R&S"

    # Company data printed on invoices
    company_name: str = "R&S Automoción"
    company_nif: str = "B22757140"
    company_address: str = "Calle Melitón Comes, 7"
    company_city: str = "46960 Aldaia (Valencia)"
    company_phone: str = ""
    company_email: str = ""

    # Server
    host: str = "127.0.0.1"
    port: int = 8080
    debug: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def session_idle_timeout(self) -> float:
        """Idle timeout in seconds."""
        return self.session_idle_timeout_minutes * 60

    def validate_startup(self) -> list[str]:
        """Validate configuration at startup. Returns warnings, raises on errors."""
        warnings: list[str] = []
        _placeholders = {"123456:ABC-DEF...", "changeme"}

        # Bot token: required outside debug
        if not self.telegram_bot_token or self.telegram_bot_token in _placeholders:
            if not self.debug:
                raise ValueError(
                    "TELEGRAM_BOT_TOKEN is missing or still a placeholder. "
                    "Set it in .env to talk to Telegram."
                )
            warnings.append("TELEGRAM_BOT_TOKEN not set. Outbound messages will fail.")

        # Admin API key: warn if unset
        if not self.admin_api_key:
            if self.debug:
                warnings.append(
                    "ADMIN_API_KEY not set. Admin APIs are open (DEBUG=true)."
                )
            else:
                warnings.append(
                    "ADMIN_API_KEY not set. Admin APIs are locked in production. "
                    "Set ADMIN_API_KEY in .env to enable admin access."
                )

        if not self.telegram_webhook_secret:
            warnings.append(
                "TELEGRAM_WEBHOOK_SECRET not set. The webhook accepts unsigned updates."
            )

        if self.session_idle_timeout_minutes <= 0:
            raise ValueError("SESSION_IDLE_TIMEOUT_MINUTES must be positive.")

        if not self.data_dir:
            warnings.append("DATA_DIR not set. Records are kept in memory only.")

        return warnings


settings = Settings()
