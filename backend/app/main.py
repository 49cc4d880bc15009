from contextlib import asynccontextmanager
from typing import Any, Dict, Optional
import logging

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from starlette.datastructures import Headers

# Importar lógica local
from . import config
from .models import Match, ProgressDeleted, ProgressIn, ProgressSaved, WatchOut
from .providers import streamed
from .store import UNSET, ProgressStore, ProgressStoreError, resolve_user

log = logging.getLogger(__name__)

WELCOME = "Welcome to the Episode Tracker API! Please use the frontend HTML application to interact."

# Uma instância por processo: o lock das mutações vive aqui
STORE = ProgressStore(config.PROGRESS_PATH)

def get_store() -> ProgressStore:
    return STORE

def current_user(x_user_id: Optional[str] = Header(default=None)) -> str:
    return resolve_user(x_user_id)

class PreflightCORSMiddleware(CORSMiddleware):
    """CORSMiddleware com preflight respondido por 204 sem corpo."""

    def preflight_response(self, request_headers: Headers) -> Response:
        response = super().preflight_response(request_headers)
        headers = {k: v for k, v in response.headers.items() if k not in ("content-length", "content-type")}
        return Response(status_code=204, headers=headers)

# --- LIFESPAN ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    log.info("Progress file: %s", config.PROGRESS_PATH)
    yield

app = FastAPI(title="Episode Tracker", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    PreflightCORSMiddleware,
    allow_origins=config.ALLOWED_ORIGINS,
    allow_methods=["GET", "POST", "OPTIONS", "DELETE"],
    allow_headers=["Content-Type", "X-User-ID"],
)

@app.exception_handler(ProgressStoreError)
async def store_error_handler(request: Request, exc: ProgressStoreError):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})

# --- ENDPOINTS ---

@app.get("/", response_class=PlainTextResponse)
def root():
    return WELCOME

@app.get("/health")
def health(store: ProgressStore = Depends(get_store)):
    return {"status": "ok", "users": store.user_count()}

@app.get("/api/all-progress")
def all_progress(user_id: str = Depends(current_user), store: ProgressStore = Depends(get_store)):
    return store.get_all(user_id)

@app.post("/api/progress", response_model=ProgressSaved)
def save_progress(body: ProgressIn, user_id: str = Depends(current_user),
                  store: ProgressStore = Depends(get_store)):
    episode = body.episode if "episode" in body.model_fields_set else UNSET
    record = store.upsert(user_id, body.tmdbId, body.mediaType, body.timestamp, episode)
    return ProgressSaved(progress=record)

@app.get("/api/progress/{tmdb_id}")
def get_progress(tmdb_id: str, user_id: str = Depends(current_user),
                 store: ProgressStore = Depends(get_store)) -> Optional[Dict[str, Any]]:
    return store.get(user_id, tmdb_id)

@app.delete("/api/progress/{tmdb_id}", response_model=ProgressDeleted)
def delete_progress(tmdb_id: str, user_id: str = Depends(current_user),
                    store: ProgressStore = Depends(get_store)):
    store.delete(user_id, tmdb_id)
    return ProgressDeleted()

# --- streamed.pk (proxy só de leitura) ---

@app.get("/api/sports")
async def sports():
    return await streamed.fetch_sports()

@app.get("/api/matches")
async def matches(kind: str = Query("live", pattern=streamed.KIND_PATTERN), sport: str | None = None):
    return await streamed.fetch_matches(kind, sport=sport)

@app.post("/api/watch", response_model=WatchOut)
async def watch(match: Match):
    raw = match.model_dump()
    return WatchOut(
        title=streamed.match_title(raw),
        badges=streamed.badge_urls(raw),
        streams=await streamed.fetch_streams(raw),
    )

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=config.HOST, port=config.PORT)
