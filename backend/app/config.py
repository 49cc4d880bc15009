# backend/app/config.py
from pathlib import Path
import os

ROOT_DIR = Path(__file__).resolve().parents[2]

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Documento único com o progresso de todos os utilizadores
PROGRESS_PATH = Path(os.getenv("PROGRESS_FILE", ROOT_DIR / ".data" / "progress.json"))

DEFAULT_ORIGINS = [
    "https://episodetracker11.netlify.app",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
ALLOWED_ORIGINS = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "").split(",") if o.strip()] or DEFAULT_ORIGINS

STREAMED_BASE_URL = os.getenv("STREAMED_BASE_URL", "https://streamed.pk").rstrip("/")
