from typing import Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel

Number = Union[int, float]

class ProgressIn(BaseModel):
    # Tudo opcional: a validação de campos em falta devolve 400, não 422
    tmdbId: Optional[Union[str, int]] = None
    mediaType: Optional[str] = None
    episode: Optional[Any] = None
    timestamp: Optional[Number] = None

class ProgressRecord(BaseModel):
    mediaType: str
    episode: Optional[Any] = None
    timestamp: Number
    lastUpdated: int

class ProgressSaved(BaseModel):
    status: Literal["success"] = "success"
    progress: Dict[str, Any]

class ProgressDeleted(BaseModel):
    status: Literal["success"] = "success"
    message: str = "Progress deleted successfully."

class ErrorOut(BaseModel):
    error: str

# --- streamed.pk ---

class Source(BaseModel):
    source: str
    id: str

class Team(BaseModel):
    name: str
    badge: Optional[str] = None

class Teams(BaseModel):
    home: Team
    away: Team

class Match(BaseModel):
    id: Optional[str] = None
    title: str = ""
    category: Optional[str] = None
    date: Optional[int] = None
    teams: Optional[Teams] = None
    sources: List[Source] = []

class Badges(BaseModel):
    home: Optional[str] = None
    away: Optional[str] = None

class WatchOut(BaseModel):
    title: str
    badges: Badges
    streams: List[Dict[str, Any]]
