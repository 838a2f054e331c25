import os


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, default))
    except ValueError:
        return default


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except ValueError:
        return default


# Gemini (vision + prompt analysis), same env names as the Replit AI integration
AI_INTEGRATIONS_GEMINI_API_KEY = os.environ.get("AI_INTEGRATIONS_GEMINI_API_KEY")
AI_INTEGRATIONS_GEMINI_BASE_URL = os.environ.get("AI_INTEGRATIONS_GEMINI_BASE_URL")
GEMINI_VISION_MODEL = os.environ.get("GEMINI_VISION_MODEL", "gemini-2.5-flash")
GEMINI_TEXT_MODEL = os.environ.get("GEMINI_TEXT_MODEL", "gemini-2.5-flash")

# OpenAI-compatible chat completions endpoint (layout structuring)
OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY")
OPENAI_BASE_URL = os.environ.get("OPENAI_BASE_URL", "https://api.openai.com/v1")
OPENAI_TEXT_MODEL = os.environ.get("OPENAI_TEXT_MODEL", "gpt-4o-mini")
REQUEST_TIMEOUT = _float_env("AI_REQUEST_TIMEOUT", 30.0)

# Retry / rate limiting
AI_MIN_CALL_INTERVAL = _float_env("AI_MIN_CALL_INTERVAL", 2.0)
AI_MAX_ATTEMPTS = _int_env("AI_MAX_ATTEMPTS", 3)
AI_BACKOFF_BASE = _float_env("AI_BACKOFF_BASE", 1.0)
RATE_LIMIT_PAUSE = _float_env("AI_RATE_LIMIT_PAUSE", 2.0)

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

# Logical canvas every layer is stored in (iPhone 6.5" App Store size)
CANVAS_WIDTH = 1242
CANVAS_HEIGHT = 2688
