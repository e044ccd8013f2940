"""Internal constants shared across the library."""

USER_AGENT = "feedsync/0.1"

DEFAULT_TABLE = "feedback"
DEFAULT_SCHEMA = "public"

#: Server-side ``status`` value of a freshly inserted, not yet enriched row.
PENDING_STATUS = "Pending"

REST_PREFIX = "/rest/v1"
AUTH_PREFIX = "/auth/v1"
REALTIME_PATH = "/realtime/v1/websocket"

#: PostgREST / GoTrue codes meaning "token no longer valid".
SESSION_EXPIRED_CODES: frozenset[str] = frozenset({"PGRST301", "PGRST302", "bad_jwt", "session_expired"})
