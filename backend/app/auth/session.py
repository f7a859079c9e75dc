"""Identity lookup for upload requests.

Two lookups are available:

* ``StoreSessionAuthenticator`` (default) reads the session shared with the
  GraphQL server. Its ``sessionId`` cookie carries ``s:<sid>.<signature>``
  (HMAC-SHA256 of the sid with the session secret, base64 without padding);
  the session itself lives server-side in the ``Session`` table, keyed by
  sid, with the JSON session data and an expiry.
* ``SessionAuthenticator`` reads ``request.session`` as populated by
  Starlette's ``SessionMiddleware`` (a self-contained signed cookie).

Both only read. A missing, forged or expired session is reported as
``None``, never raised; a failing session store propagates its error.
"""
import base64
import hashlib
import hmac
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, Sequence
from urllib.parse import unquote

from sqlalchemy import Column, DateTime, MetaData, String, Table, Text, create_engine, select
from sqlalchemy.engine import Engine
from starlette.requests import HTTPConnection

logger = logging.getLogger(__name__)


class IdentityLookup(Protocol):
    """Anything that can tell who sent a request."""

    def authenticate(self, request: HTTPConnection) -> Optional[str]:
        ...


class SessionStoreReader(Protocol):
    """Read-only access to server-side sessions."""

    def get_session(self, sid: str) -> Optional[Dict[str, Any]]:
        ...


def _user_id_from(session: Any, user_key: str) -> Optional[str]:
    if not isinstance(session, dict):
        return None
    user_id = session.get(user_key)
    if user_id is None or isinstance(user_id, bool):
        return None
    if isinstance(user_id, (str, int)):
        user_id = str(user_id).strip()
        return user_id or None
    return None


# ---------------------------------------------------------------------------
# Signed session id cookie
# ---------------------------------------------------------------------------


def sign_session_id(sid: str, secret: str) -> str:
    """Cookie value for ``sid``, in the ``s:<sid>.<signature>`` format."""
    digest = hmac.new(secret.encode("utf-8"), sid.encode("utf-8"), hashlib.sha256).digest()
    signature = base64.b64encode(digest).decode("ascii").rstrip("=")
    return f"s:{sid}.{signature}"


def unsign_session_id(cookie_value: str, secrets: Sequence[str]) -> Optional[str]:
    """Return the sid from a signed cookie, or ``None`` if any secret fails to verify it.

    Examples:
        >>> unsign_session_id(sign_session_id("abc", "k"), ["k"])
        'abc'
        >>> unsign_session_id("s:abc.bad", ["k"]) is None
        True
    """
    value = unquote(cookie_value or "")
    if not value.startswith("s:") or "." not in value:
        return None
    sid = value[2:].rsplit(".", 1)[0]
    if not sid:
        return None
    for secret in secrets:
        if hmac.compare_digest(sign_session_id(sid, secret), value):
            return sid
    return None


# ---------------------------------------------------------------------------
# Session store
# ---------------------------------------------------------------------------

session_metadata = MetaData()

session_table = Table(
    "Session",
    session_metadata,
    Column("id", String, primary_key=True),
    Column("sid", String, unique=True, nullable=False),
    Column("data", Text, nullable=False),
    Column("expiresAt", DateTime, nullable=False),
)


class SqlSessionStore:
    """Reads sessions from the relational session table.

    The table is written by the GraphQL server; rows past ``expiresAt``
    are treated as absent even before that server purges them.
    """

    def __init__(self, url: Optional[str] = None, engine: Optional[Engine] = None):
        if engine is None:
            if not url:
                raise ValueError("SqlSessionStore needs a database url or an engine")
            engine = create_engine(url, pool_pre_ping=True)
        self.engine = engine

    def get_session(self, sid: str) -> Optional[Dict[str, Any]]:
        query = select(session_table.c.data, session_table.c.expiresAt).where(
            session_table.c.sid == sid
        )
        with self.engine.connect() as conn:
            row = conn.execute(query).first()
        if row is None:
            return None

        data, expires_at = row
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        if expires_at is not None:
            if expires_at.tzinfo is not None:
                expires_at = expires_at.astimezone(timezone.utc).replace(tzinfo=None)
            if expires_at <= now:
                return None

        try:
            session = json.loads(data)
        except (TypeError, ValueError):
            logger.warning("Session %s has unreadable data", sid)
            return None
        return session if isinstance(session, dict) else None


# ---------------------------------------------------------------------------
# Authenticators
# ---------------------------------------------------------------------------


class StoreSessionAuthenticator:
    """Resolves the user id through the signed cookie and the session store."""

    def __init__(
        self,
        store: Optional[SessionStoreReader],
        secrets: List[str],
        cookie_name: str = "sessionId",
        user_key: str = "userId",
    ):
        self.store = store
        self.secrets = [s for s in secrets if s]
        self.cookie_name = cookie_name
        self.user_key = user_key

    def authenticate(self, request: HTTPConnection) -> Optional[str]:
        if self.store is None:
            return None

        cookie = request.cookies.get(self.cookie_name)
        if not cookie:
            return None

        sid = unsign_session_id(cookie, self.secrets)
        if sid is None:
            logger.info("Rejected session cookie with a bad signature")
            return None

        session = self.store.get_session(sid)
        return _user_id_from(session, self.user_key)


class SessionAuthenticator:
    """Reads the authenticated user id from ``request.session``.

    Absence of a session is an expected outcome, so ``authenticate``
    returns ``None`` rather than raising.
    """

    def __init__(self, user_key: str = "userId"):
        self.user_key = user_key

    def authenticate(self, request: HTTPConnection) -> Optional[str]:
        # request.session asserts when SessionMiddleware is not installed
        if "session" not in request.scope:
            logger.debug("No session middleware on this request")
            return None
        return _user_id_from(request.scope["session"], self.user_key)
