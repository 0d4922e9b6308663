# app/utils/state_store.py
import json, os, time, threading, logging
from contextlib import suppress

import redis

logger = logging.getLogger(__name__)


class _InMemoryTTL:
    def __init__(self):
        self._d = {}
        self._lock = threading.Lock()

    def get(self, k):
        now = time.time()
        with self._lock:
            v = self._d.get(k)
            if not v: return None
            exp, payload = v
            if exp and now > exp:
                self._d.pop(k, None)
                return None
            return payload

    def set(self, k, payload, ttl=None):
        exp = time.time() + ttl if ttl else None
        with self._lock:
            self._d[k] = (exp, payload)

    def pop(self, k):
        with self._lock:
            self._d.pop(k, None)


class StateStore:
    """
    Namespaced JSON state keyed by user (or patient) id:
      - Uses REDIS_URL when configured (shared across workers)
      - Else a process-local in-memory TTL map
      - Optional file cache for dev (STATE_FILE_CACHE=1)

    Holds persisted auth sessions, the cached profile blob, medication
    lists and the caretaker's medication edit state.
    """
    def __init__(self, namespace="medtrack", default_ttl_secs=14*24*3600,
                 redis_url=None, file_cache=None, file_dir=None):
        self.ns = namespace
        self.default_ttl = default_ttl_secs

        self._redis = None
        url = redis_url if redis_url is not None else os.getenv("REDIS_URL")
        if url:
            self._redis = redis.Redis.from_url(url, decode_responses=True)
            try:
                self._redis.ping()
            except redis.RedisError as e:
                logger.warning("Redis unavailable at %s, using in-memory state: %s", url, e)
                self._redis = None

        self._mem = _InMemoryTTL()
        if file_cache is None:
            file_cache = os.getenv("STATE_FILE_CACHE", "0") == "1"
        self._file_cache = file_cache
        self._file_dir = file_dir or os.getenv("STATE_FILE_DIR", "/tmp/medtrack_state")
        if self._file_cache:
            os.makedirs(self._file_dir, exist_ok=True)

    def _key(self, owner_id, suffix="state"):
        return f"{self.ns}:{owner_id}:{suffix}"

    def _path(self, key):
        return os.path.join(self._file_dir, key.replace(":", "_") + ".json")

    def get_json(self, owner_id, suffix="state"):
        key = self._key(owner_id, suffix)
        if self._redis:
            raw = self._redis.get(key)
            return json.loads(raw) if raw else None

        if self._file_cache:
            with suppress(FileNotFoundError):
                with open(self._path(key), "r") as f:
                    return json.load(f)
            return None

        raw = self._mem.get(key)
        return json.loads(raw) if raw else None

    def set_json(self, owner_id, payload, suffix="state", ttl=None):
        key = self._key(owner_id, suffix)
        ttl = ttl or self.default_ttl
        raw = json.dumps(payload, ensure_ascii=False)

        if self._redis:
            # setex ensures TTL
            self._redis.setex(key, ttl, raw)
            return

        if self._file_cache:
            path = self._path(key)
            tmp = path + ".tmp"
            with open(tmp, "w") as f:
                f.write(raw)
            os.replace(tmp, path)
            return

        self._mem.set(key, raw, ttl=ttl)

    def delete(self, owner_id, suffix="state"):
        key = self._key(owner_id, suffix)
        if self._redis:
            self._redis.delete(key)
            return

        if self._file_cache:
            with suppress(FileNotFoundError):
                os.remove(self._path(key))
            return

        self._mem.pop(key)
