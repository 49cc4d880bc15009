from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional
import logging, re

import httpx

from ..config import STREAMED_BASE_URL

log = logging.getLogger(__name__)

BASE = STREAMED_BASE_URL

# Só um segmento de caminho: live, today, all, popular, football, ...
KIND_PATTERN = r"^[\w-]+$"
KIND_RE = re.compile(r"[\w-]+")

@asynccontextmanager
async def _session(client: Optional[httpx.AsyncClient]):
    # Reutiliza o client do chamador; caso contrário abre um só para esta chamada
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(base_url=BASE, timeout=15) as own:
        yield own

async def _get_json(client: httpx.AsyncClient, path: str):
    r = await client.get(path)
    r.raise_for_status()
    return r.json()

async def _get_list(client: httpx.AsyncClient, path: str) -> List[dict]:
    data = await _get_json(client, path)
    # Erros da API (rate limit, etc.) chegam às vezes como objeto com status 200
    if not isinstance(data, list) or not all(isinstance(x, dict) for x in data):
        raise ValueError(f"unexpected payload from {path}: {str(data)[:200]}")
    return data

def matches_path(kind: str) -> str:
    if not KIND_RE.fullmatch(kind):
        raise ValueError(f"invalid listing kind: {kind!r}")
    if kind == "today":
        return "/api/matches/all-today"
    if kind == "all":
        return "/api/matches/all"
    return f"/api/matches/{kind}"

async def fetch_sports(client: Optional[httpx.AsyncClient] = None) -> List[dict]:
    try:
        async with _session(client) as c:
            sports = await _get_list(c, "/api/sports")
    except (httpx.HTTPError, ValueError) as e:
        log.error("Error loading sports: %s", e)
        return []
    return sorted(sports, key=lambda s: str(s.get("name") or "").casefold())

async def fetch_matches(kind: str = "live", sport: Optional[str] = None,
                        client: Optional[httpx.AsyncClient] = None) -> List[dict]:
    try:
        async with _session(client) as c:
            matches = await _get_list(c, matches_path(kind))
    except (httpx.HTTPError, ValueError) as e:
        log.error("Error loading matches (%s): %s", kind, e)
        return []
    if sport:
        matches = [m for m in matches if m.get("category") == sport]
    return matches

def _stream_no(stream: dict) -> float:
    n = stream.get("streamNo")
    return n if isinstance(n, (int, float)) and not isinstance(n, bool) else 0

async def fetch_streams(match: Dict[str, Any], client: Optional[httpx.AsyncClient] = None) -> List[dict]:
    """Junta os streams de todas as fontes do jogo; fontes que falham são ignoradas.

    Ordem: HD primeiro, depois streamNo crescente (em falta ou null conta como 0).
    """
    streams: List[dict] = []
    async with _session(client) as c:
        for src in match.get("sources") or []:
            try:
                streams.extend(await _get_list(c, f"/api/stream/{src['source']}/{src['id']}"))
            except (httpx.HTTPError, ValueError) as e:
                log.warning("Error loading stream for %s: %s", src.get("source"), e)
    streams.sort(key=lambda s: (not s.get("hd"), _stream_no(s)))
    return streams

def match_title(match: Dict[str, Any]) -> str:
    teams = match.get("teams")
    if teams:
        return f"{teams['home']['name']} vs {teams['away']['name']}"
    return match.get("title", "")

def badge_url(badge: Optional[str]) -> Optional[str]:
    return f"{BASE}/api/images/badge/{badge}.webp" if badge else None

def badge_urls(match: Dict[str, Any]) -> Dict[str, Optional[str]]:
    teams = match.get("teams")
    if not teams:
        return {"home": None, "away": None}
    return {
        "home": badge_url((teams.get("home") or {}).get("badge")),
        "away": badge_url((teams.get("away") or {}).get("badge")),
    }
