# backend/app/store.py
from contextlib import suppress
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Optional
import json, logging, os, tempfile, time

from .models import ProgressRecord

log = logging.getLogger(__name__)

ANONYMOUS_USER = "anonymous_user"

# episode não enviado (diferente de episode: null)
UNSET = object()

# Mesmo modo que um open() normal daria: 0666 menos a umask do processo
FILE_MODE = 0o666
_UMASK = os.umask(0)
os.umask(_UMASK)

Document = Dict[str, Dict[str, dict]]


class ProgressStoreError(Exception):
    status_code = 500


class MissingFieldsError(ProgressStoreError):
    status_code = 400

    def __init__(self, message: str = "Missing required fields: tmdbId, mediaType, timestamp"):
        super().__init__(message)


class RecordNotFoundError(ProgressStoreError):
    status_code = 404

    def __init__(self, message: str = "Progress not found for this item."):
        super().__init__(message)


class StorageError(ProgressStoreError):
    def __init__(self, message: str = "Failed to persist progress."):
        super().__init__(message)


def resolve_user(user_id: Optional[str]) -> str:
    return user_id or ANONYMOUS_USER


def now_ms() -> int:
    return int(time.time() * 1000)


class ProgressStore:
    """Progresso de todos os utilizadores num único ficheiro JSON.

    Cada mutação lê o documento inteiro, aplica uma alteração e reescreve-o.
    As mutações passam por um lock da instância, por isso dentro do mesmo
    processo não há lost-updates; entre processos vale o último a escrever.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = Lock()

    def load(self) -> Document:
        try:
            raw = self.path.read_text("utf-8")
        except FileNotFoundError:
            log.info("Progress file %s not found. Starting with empty progress data.", self.path)
            return {}
        except OSError:
            log.exception("Error loading progress from %s", self.path)
            return {}

        try:
            data = json.loads(raw)
        except ValueError:
            log.exception("Progress file %s is not valid JSON", self.path)
            return {}
        if not isinstance(data, dict):
            log.error("Progress file %s does not hold an object (got %s)", self.path, type(data).__name__)
            return {}
        return self._clean(data)

    def _clean(self, data: dict) -> Document:
        # Utilizadores e registos que não são objetos são descartados
        document: Document = {}
        for user_id, items in data.items():
            if not isinstance(items, dict):
                log.error("Dropping progress for user %s: expected object, got %s", user_id, type(items).__name__)
                continue
            records = {}
            for item_id, record in items.items():
                if isinstance(record, dict):
                    records[item_id] = record
                else:
                    log.error("Dropping record %s of user %s: expected object, got %s",
                              item_id, user_id, type(record).__name__)
            document[user_id] = records
        return document

    def save(self, document: Document) -> bool:
        """Escreve o documento completo (indent=2). Devolve False se falhar."""
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # Escrita atómica: ficheiro temporário ao lado + rename
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=self.path.name, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(json.dumps(document, ensure_ascii=False, indent=2))
            os.chmod(tmp_name, FILE_MODE & ~_UMASK)
            os.replace(tmp_name, self.path)
            return True
        except (OSError, TypeError, ValueError):
            log.exception("Error saving progress to %s", self.path)
            if tmp_name:
                with suppress(OSError):
                    os.unlink(tmp_name)
            return False

    def _commit(self, document: Document):
        if not self.save(document):
            raise StorageError()

    # --- operações ---

    def get_all(self, user_id: str) -> Dict[str, dict]:
        return self.load().get(user_id) or {}

    def get(self, user_id: str, item_id: str) -> Optional[dict]:
        user = self.load().get(user_id)
        if not user:
            return None
        return user.get(item_id)

    def upsert(self, user_id: str, item_id: Any, media_type: Optional[str],
               timestamp: Any, episode: Any = UNSET) -> dict:
        """Grava o registo; episode só fica no ficheiro se tiver sido enviado (mesmo que null)."""
        if not item_id or not media_type or timestamp is None:
            raise MissingFieldsError()

        fields = dict(mediaType=media_type, timestamp=timestamp, lastUpdated=now_ms())
        if episode is not UNSET:
            fields["episode"] = episode
        record = ProgressRecord(**fields).model_dump(exclude_unset=True)

        with self._lock:
            document = self.load()
            document.setdefault(user_id, {})[str(item_id)] = record
            self._commit(document)
        return record

    def delete(self, user_id: str, item_id: str) -> None:
        with self._lock:
            document = self.load()
            user = document.get(user_id)
            if not user or item_id not in user:
                log.info("No progress found for TMDB ID %s for user %s to delete.", item_id, user_id)
                raise RecordNotFoundError()
            del user[item_id]
            self._commit(document)
        log.info("Progress for TMDB ID %s deleted for user %s", item_id, user_id)

    def user_count(self) -> int:
        return len(self.load())
