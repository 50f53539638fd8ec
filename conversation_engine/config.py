"""Configuration and settings."""

import json
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict

load_dotenv()


def _env_list(name: str, default: list[str]) -> list[str]:
    """Read a comma separated (or JSON array) env var into a list of strings."""
    raw = os.getenv(name, "").strip()
    if not raw:
        return list(default)
    if raw.startswith("["):
        return [str(x).strip() for x in json.loads(raw) if str(x).strip()]
    return [x.strip() for x in raw.split(",") if x.strip()]


# Paths
PROJECT_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = PROJECT_ROOT / "data"
OUTPUT_DIR = PROJECT_ROOT / "output"
INBOX_PATH = DATA_DIR / "inbox.json"
SENT_ITEMS_PATH = OUTPUT_DIR / "sent_items.json"
PROMPTS_PATH = PROJECT_ROOT / "config" / "prompts.yaml"
PROMPTS_OVERRIDE_PATH = os.getenv("PROMPTS_OVERRIDE_PATH", "").strip()

# Ensure directories exist
DATA_DIR.mkdir(parents=True, exist_ok=True)
OUTPUT_DIR.mkdir(parents=True, exist_ok=True)

# Database
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DATA_DIR / 'conversations.sqlite'}")

# AI providers
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")
AI_PROVIDER_ORDER = _env_list("AI_PROVIDER_ORDER", ["openai", "anthropic"])
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
ANTHROPIC_MODEL = os.getenv("ANTHROPIC_MODEL", "claude-3-5-sonnet-latest")
AI_TEMPERATURE = float(os.getenv("AI_TEMPERATURE", "0.7"))
AI_MAX_TOKENS = int(os.getenv("AI_MAX_TOKENS", "1000"))
AI_TIMEOUT_SECONDS = float(os.getenv("AI_TIMEOUT_SECONDS", "8"))
# A provider that was unavailable or rate limited is skipped for this long.
AI_PROVIDER_COOLDOWN_SECONDS = int(os.getenv("AI_PROVIDER_COOLDOWN_SECONDS", "60"))

# Engine policy
FRESHNESS_WINDOW_SECONDS = int(os.getenv("FRESHNESS_WINDOW_SECONDS", "3600"))
ANALYTICS_RECENT_LIMIT = int(os.getenv("ANALYTICS_RECENT_LIMIT", "10"))
ANALYTICS_DIGEST_SIZE = int(os.getenv("ANALYTICS_DIGEST_SIZE", "3"))
DEFAULT_VARIANT_COUNT = int(os.getenv("DEFAULT_VARIANT_COUNT", "3"))

URGENT_KEYWORDS = _env_list(
    "URGENT_KEYWORDS", ["urgent", "immediately", "asap", "right away", "urgente", "immediato", "subito"]
)
FORMAL_KEYWORDS = _env_list(
    "FORMAL_KEYWORDS", ["kind regards", "best regards", "dear", "cordiali saluti", "distinti saluti", "gentile"]
)
INFORMAL_KEYWORDS = _env_list("INFORMAL_KEYWORDS", ["hi", "hey", "thanks", "ciao", "salve", "grazie"])
# Urgency uses the urgent tone words plus "important".
URGENCY_KEYWORDS = _env_list("URGENCY_KEYWORDS", URGENT_KEYWORDS + ["important", "importante"])

# Logging
LOG_DIR = OUTPUT_DIR / "logs"
LOG_FILE = LOG_DIR / "app.jsonl"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
VERBOSE_LOGGING = os.getenv("VERBOSE_LOGGING", "false").lower() == "true"

# Ensure log directory exists
LOG_DIR.mkdir(parents=True, exist_ok=True)

# OpenTelemetry
TRACING_ENABLED = os.getenv("TRACING_ENABLED", "false").lower() == "true"
OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT", "http://localhost:6006/v1/traces")
OTLP_API_KEY = os.getenv("OTLP_API_KEY", "")
SERVICE_NAME = os.getenv("SERVICE_NAME", "email-conversation-engine")
DEPLOYMENT_ENVIRONMENT = os.getenv("DEPLOYMENT_ENVIRONMENT", "development")

# HTTP API
API_PORT = int(os.getenv("API_PORT", "8000"))


class EngineConfig(BaseModel):
    """Immutable settings handed to each engine component at construction."""

    model_config = ConfigDict(frozen=True)

    provider_order: tuple[str, ...] = tuple(AI_PROVIDER_ORDER)
    openai_api_key: str = OPENAI_API_KEY
    anthropic_api_key: str = ANTHROPIC_API_KEY
    openai_model: str = OPENAI_MODEL
    anthropic_model: str = ANTHROPIC_MODEL
    temperature: float = AI_TEMPERATURE
    max_tokens: int = AI_MAX_TOKENS
    gateway_timeout_seconds: float = AI_TIMEOUT_SECONDS
    provider_cooldown_seconds: int = AI_PROVIDER_COOLDOWN_SECONDS

    freshness_window_seconds: int = FRESHNESS_WINDOW_SECONDS
    analytics_recent_limit: int = ANALYTICS_RECENT_LIMIT
    analytics_digest_size: int = ANALYTICS_DIGEST_SIZE
    default_variant_count: int = DEFAULT_VARIANT_COUNT

    urgent_keywords: tuple[str, ...] = tuple(URGENT_KEYWORDS)
    formal_keywords: tuple[str, ...] = tuple(FORMAL_KEYWORDS)
    informal_keywords: tuple[str, ...] = tuple(INFORMAL_KEYWORDS)
    urgency_keywords: tuple[str, ...] = tuple(URGENCY_KEYWORDS)


def load_engine_config(**overrides) -> EngineConfig:
    """Build an EngineConfig from environment defaults, with per-field overrides."""
    return EngineConfig(**overrides)
