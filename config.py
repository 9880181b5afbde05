import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

API_KEY_VARS = ("GEMINI_API_KEY", "GOOGLE_API_KEY")

# Gemini 3 takes a thinking level; 2.5 models only take a token budget.
THINKING_LEVEL_MODELS = {
    "gemini-3.1-pro-preview",
    "gemini-3-pro-preview",
    "gemini-3-flash-preview",
}

THINKING_BUDGET_MODELS = {
    "gemini-2.5-pro",
    "gemini-2.5-flash",
}

LOW_THINKING_BUDGET = 1024

SUGGESTIONS = [
    "mistborn era 2",
    "cyberpunk street samurai",
    "steampunk airship",
    "medieval castle interior",
    "fantasy tavern",
    "sci-fi spaceship cockpit",
]


def get_api_key():
    for name in API_KEY_VARS:
        value = os.environ.get(name, "").strip()
        if value:
            return value
    return None


def _int_env(name, default):
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _bool_env(name):
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    text_model: str = "gemini-2.5-flash"
    search_model: str = "gemini-2.5-flash"
    model_timeout_ms: int = 300_000
    max_concurrent_lookups: int = 4
    port: int = 5001
    log_level: str = "INFO"
    log_json: bool = False
    # Cosmetic pauses between checklist stages, in milliseconds.
    pauses_ms: dict = field(default_factory=lambda: {"terms": 500, "collage": 300, "deliver": 500})

    @classmethod
    def from_env(cls):
        settings = cls(
            text_model=os.environ.get("REFMONSTER_TEXT_MODEL") or cls.text_model,
            search_model=os.environ.get("REFMONSTER_SEARCH_MODEL") or cls.search_model,
            model_timeout_ms=_int_env("REFMONSTER_MODEL_TIMEOUT_MS", cls.model_timeout_ms),
            max_concurrent_lookups=_int_env(
                "REFMONSTER_MAX_CONCURRENT_LOOKUPS", cls.max_concurrent_lookups
            ),
            port=_int_env("REFMONSTER_PORT", cls.port),
            log_level=(os.environ.get("REFMONSTER_LOG_LEVEL") or cls.log_level).upper(),
            log_json=_bool_env("REFMONSTER_LOG_JSON"),
        )
        if settings.max_concurrent_lookups < 1:
            settings.max_concurrent_lookups = cls.max_concurrent_lookups
        return settings
