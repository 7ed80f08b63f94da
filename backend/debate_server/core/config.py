import os
from pathlib import Path
from dotenv import load_dotenv

_BACKEND_ROOT = Path(__file__).resolve().parents[2]
_BACKEND_ENV_PATH = _BACKEND_ROOT / ".env"
load_dotenv(dotenv_path=_BACKEND_ENV_PATH, override=False)

LLM_PROVIDER = str(os.getenv("LLM_PROVIDER") or "gemini").strip().lower()
GEMINI_API_KEY = str(os.getenv("GEMINI_API_KEY") or "").strip()
OPENAI_API_KEY = str(os.getenv("OPENAI_API_KEY") or "").strip()

_DEFAULT_EXTRACT_MODELS = {"gemini": "gemini-2.5-flash-lite", "openai": "gpt-4o-mini"}
_DEFAULT_ANALYZE_MODELS = {"gemini": "gemini-2.5-flash", "openai": "gpt-4o-mini"}

EXTRACT_MODEL = str(os.getenv("EXTRACT_MODEL") or _DEFAULT_EXTRACT_MODELS.get(LLM_PROVIDER, "")).strip()
ANALYZE_MODEL = str(os.getenv("ANALYZE_MODEL") or _DEFAULT_ANALYZE_MODELS.get(LLM_PROVIDER, "")).strip()

RATE_LIMIT_MAX_CONNECTIONS = max(100, int(os.getenv("RATE_LIMIT_MAX_CONNECTIONS", "10000")))
WS_MAX_TEXT_BYTES = max(1024, int(os.getenv("WS_MAX_TEXT_BYTES", "65536")))

HOST = str(os.getenv("HOST") or "127.0.0.1").strip()
PORT = int(os.getenv("PORT", "2000"))
