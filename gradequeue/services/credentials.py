"""
Canvas Credential Resolution
============================
Looks up a user's Canvas instance URL and access token.

Tokens are stored encrypted in Supabase; the ``get_canvas_credentials`` RPC
decrypts them on the database side and returns a single row.
"""
import os
import time
import logging
import threading

from gradequeue.errors import MissingCredentialError
from gradequeue.models import Credential

logger = logging.getLogger(__name__)


class CredentialStore:
    """Read-only access to the per-user Canvas profile fields."""

    def get(self, user_id):
        """Return a dict with canvas_instance_url / canvas_access_token, or None."""
        raise NotImplementedError


class SupabaseCredentialStore(CredentialStore):
    """Credential store backed by the Supabase ``get_canvas_credentials`` RPC."""

    def __init__(self, client=None):
        self._client = client

    def _get_supabase(self):
        """Get or create Supabase admin client."""
        if self._client is None:
            from supabase import create_client
            url = os.getenv("SUPABASE_URL")
            key = os.getenv("SUPABASE_SERVICE_KEY")
            if not url or not key:
                raise Exception("Supabase credentials not configured. Check SUPABASE_URL and SUPABASE_SERVICE_KEY in .env")
            self._client = create_client(url, key)
        return self._client

    def get(self, user_id):
        db = self._get_supabase()
        result = db.rpc('get_canvas_credentials', {'user_id_param': user_id}).execute()
        rows = result.data or []
        if isinstance(rows, dict):
            return rows
        if len(rows) == 0:
            return None
        return rows[0]


class InMemoryCredentialStore(CredentialStore):
    """Dict-backed store for local development and tests."""

    def __init__(self, records=None):
        self.records = dict(records or {})

    def put(self, user_id, canvas_instance_url, canvas_access_token):
        self.records[user_id] = {
            "canvas_instance_url": canvas_instance_url,
            "canvas_access_token": canvas_access_token,
        }

    def get(self, user_id):
        return self.records.get(user_id)


class SessionCache:
    """Small TTL cache keyed by user id.

    Entries are only dropped on expiry or an explicit ``invalidate``; Canvas
    data changes never touch it.
    """

    def __init__(self, ttl=300.0, clock=time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries = {}
        self._lock = threading.Lock()

    def get(self, key):
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            return value

    def set(self, key, value):
        with self._lock:
            self._entries[key] = (value, self._clock() + self.ttl)

    def invalidate(self, key):
        with self._lock:
            self._entries.pop(key, None)

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self):
        with self._lock:
            return len(self._entries)


class CredentialResolver:
    """Resolve ``user_id -> Credential`` or raise MissingCredentialError."""

    def __init__(self, store, cache=None):
        self.store = store
        self.cache = cache

    def resolve(self, user_id):
        if self.cache is not None:
            cached = self.cache.get(user_id)
            if cached is not None:
                return cached

        record = self.store.get(user_id) if user_id else None
        if not record:
            logger.warning("No Canvas credentials on file for user %s", user_id)
            raise MissingCredentialError(user_id)

        base_url = (record.get("canvas_instance_url") or "").strip()
        token = (record.get("canvas_access_token") or "").strip()
        if not base_url or not token:
            logger.warning("Incomplete Canvas credentials for user %s", user_id)
            raise MissingCredentialError(user_id)

        credential = Credential(base_url=base_url.rstrip("/"), access_token=token)
        if self.cache is not None:
            self.cache.set(user_id, credential)
        return credential

    def forget(self, user_id):
        """Drop a cached credential, e.g. after Canvas rejected the token."""
        if self.cache is not None:
            self.cache.invalidate(user_id)
