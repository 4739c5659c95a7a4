"""Конфигурация приложения."""
import os
from functools import lru_cache


def _int(name: str, default: int) -> int:
    return int(os.environ.get(name, str(default)))


@lru_cache
def get_config():
    return type("Config", (), {
        "telegram_bot_token": os.environ.get("TELEGRAM_BOT_TOKEN", ""),
        "debug": os.environ.get("DEBUG", "0").lower() in ("1", "true", "yes"),
        "allowed_origins": os.environ.get("ALLOWED_ORIGINS", "*").split(","),
        "guest_secret": os.environ.get("GUEST_SECRET", ""),
        "host": os.environ.get("HOST", "0.0.0.0"),
        "port": _int("PORT", 8000),
        # Часы и таймеры (миллисекунды, если не сказано иное)
        "turn_time_ms": _int("TURN_TIME_MS", 60_000),
        "disconnect_grace_ms": _int("DISCONNECT_GRACE_MS", 10_000),
        "tick_interval_ms": _int("TICK_INTERVAL_MS", 1_000),
        "sweep_interval_s": _int("SWEEP_INTERVAL_S", 60),
        "max_idle_s": _int("MAX_IDLE_S", 300),
        # ИИ-соперник
        "ai_think_min_ms": _int("AI_THINK_MIN_MS", 1_000),
        "ai_think_max_ms": _int("AI_THINK_MAX_MS", 3_000),
        "ai_strategy_timeout_s": _int("AI_STRATEGY_TIMEOUT_S", 5),
        "openai_api_key": os.environ.get("OPENAI_API_KEY", "").strip(),
        "openai_model": os.environ.get("OPENAI_MODEL", "gpt-4o-mini"),
        "openai_base_url": os.environ.get("OPENAI_BASE_URL", "https://api.openai.com/v1"),
        # Хранилище и рейтинг
        "supabase_url": os.environ.get("SUPABASE_URL", "").rstrip("/"),
        "supabase_service_key": os.environ.get("SUPABASE_SERVICE_KEY", ""),
        "elo_k": _int("ELO_K", 32),
        "default_rating": _int("DEFAULT_RATING", 1000),
    })()
