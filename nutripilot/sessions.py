import json
import logging
import threading
import time
from typing import Dict, Optional, Tuple

from pydantic import ValidationError
from upstash_redis import Redis

from .config import Settings
from .models import Session

logger = logging.getLogger("nutripilot.sessions")

KEY_PREFIX = "nutripilot:session:"


def e164(raw: str) -> str:
    """Normalize a WhatsApp/phone value to +E164 for session keys."""
    if not raw:
        return ""
    s = raw.strip().replace("whatsapp:", "")
    s = "".join(ch for ch in s if ch.isdigit() or ch == "+")
    if not s:
        return ""
    if s[0] != "+":
        s = "+" + s
    return s


def mask_sender(sender: str) -> str:
    if not sender:
        return "unknown"
    return "***" + sender[-4:]


class SessionStore:
    """get/put/delete by sender; load() creates a session on first contact."""

    def get(self, sender: str) -> Optional[Session]:
        raise NotImplementedError

    def put(self, sender: str, session: Session) -> None:
        raise NotImplementedError

    def delete(self, sender: str) -> None:
        raise NotImplementedError

    def load(self, sender: str) -> Session:
        session = self.get(sender)
        if session is None:
            session = Session()
            self.put(sender, session)
        return session


class MemorySessionStore(SessionStore):
    """In-process sessions with a per-entry TTL. Good for one worker."""

    def __init__(self, ttl_seconds: int = 86400, clock=time.monotonic):
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._data: Dict[str, Tuple[float, dict]] = {}

    def get(self, sender: str) -> Optional[Session]:
        with self._lock:
            entry = self._data.get(sender)
            if entry is None:
                return None
            expires_at, payload = entry
            if self._ttl and self._clock() >= expires_at:
                del self._data[sender]
                return None
        # stored as a dict so callers never share a live object
        return Session.from_dict(payload)

    def put(self, sender: str, session: Session) -> None:
        with self._lock:
            now = self._clock()
            self._purge_expired(now)
            self._data[sender] = (now + self._ttl, session.to_dict())

    def delete(self, sender: str) -> None:
        with self._lock:
            self._data.pop(sender, None)

    def __len__(self) -> int:
        return len(self._data)

    def _purge_expired(self, now: float) -> None:
        # caller holds the lock
        if not self._ttl:
            return
        for sender in [s for s, (expires_at, _) in self._data.items() if now >= expires_at]:
            del self._data[sender]


class RedisSessionStore(SessionStore):
    """One JSON document per sender in Upstash Redis, expiring after the TTL."""

    def __init__(self, client: Redis, ttl_seconds: int = 86400):
        self._r = client
        self._ttl = ttl_seconds

    @staticmethod
    def key(sender: str) -> str:
        return f"{KEY_PREFIX}{e164(sender) or sender}"

    def get(self, sender: str) -> Optional[Session]:
        raw = self._r.get(self.key(sender))
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="ignore")
        try:
            return Session.from_dict(json.loads(raw))
        except (ValidationError, ValueError, TypeError) as e:
            # corrupt entries start over rather than wedge the conversation
            logger.warning("Dropping unreadable session for %s: %s", mask_sender(sender), e)
            return None

    def put(self, sender: str, session: Session) -> None:
        payload = json.dumps(session.to_dict(), ensure_ascii=False)
        if self._ttl:
            self._r.set(self.key(sender), payload, ex=self._ttl)
        else:
            self._r.set(self.key(sender), payload)

    def delete(self, sender: str) -> None:
        self._r.delete(self.key(sender))


def build_session_store(settings: Settings) -> SessionStore:
    if settings.upstash_url and settings.upstash_token:
        logger.info("Using Upstash Redis session store")
        client = Redis(url=settings.upstash_url, token=settings.upstash_token)
        return RedisSessionStore(client, ttl_seconds=settings.session_ttl_seconds)
    logger.info("Using in-process session store")
    return MemorySessionStore(ttl_seconds=settings.session_ttl_seconds)
