import os
from dataclasses import dataclass

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    """Runtime configuration read from the environment."""
    port: int = 3000
    agrocore_base: str = ""
    agrocore_timeout: float = 20.0
    agrocore_retries: int = 2
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    upstash_url: str = ""
    upstash_token: str = ""
    session_ttl_seconds: int = 86400
    max_ingredients: int = 120
    log_level: str = "INFO"

    @property
    def agrocore_enabled(self) -> bool:
        return bool(self.agrocore_base)


def load_settings() -> Settings:
    """
    Build Settings from environment variables, after loading a local .env.
    Malformed numeric values raise ValueError so a bad deploy fails at startup.
    """
    load_dotenv()

    return Settings(
        port=int(os.getenv("PORT", "3000")),
        agrocore_base=(os.getenv("AGROCORE_BASE") or os.getenv("AGROCORE_URL") or "").rstrip("/"),
        agrocore_timeout=float(os.getenv("AGROCORE_TIMEOUT", "20")),
        agrocore_retries=int(os.getenv("AGROCORE_RETRIES", "2")),
        twilio_account_sid=os.getenv("TWILIO_ACCOUNT_SID", ""),
        twilio_auth_token=os.getenv("TWILIO_AUTH_TOKEN", ""),
        upstash_url=os.getenv("UPSTASH_URL") or os.getenv("REDIS_URL") or "",
        upstash_token=os.getenv("UPSTASH_TOKEN", ""),
        session_ttl_seconds=int(os.getenv("SESSION_TTL_SECONDS", "86400")),
        max_ingredients=int(os.getenv("MAX_INGREDIENTS", "120")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
