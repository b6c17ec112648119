import hashlib
import threading
import time
import logging
from supabase import Client
from fastapi import HTTPException
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)


class AuthService:
    """Resolves bearer tokens issued by Supabase Auth (phone OTP) into users.

    The core never authenticates on its own; it trusts the user id returned
    here. A short TTL cache keeps parallel requests with the same token from
    each hitting the auth API.
    """

    def __init__(self, supabase: Client, cache_ttl_sec: int = 60, cache_max_size: int = 500):
        self.supabase = supabase
        self.cache_ttl_sec = cache_ttl_sec
        self.cache_max_size = cache_max_size
        self._cache: Dict[str, tuple] = {}
        self._lock = threading.Lock()

    def _cached(self, cache_key: str, now: float) -> Optional[Dict[str, Any]]:
        with self._lock:
            entry = self._cache.get(cache_key)
            if entry is None:
                return None
            user_data, expiry = entry
            if now < expiry:
                return user_data
            del self._cache[cache_key]
            return None

    def get_current_user(self, token: str) -> Dict[str, Any]:
        """Get current user details from a Supabase Auth token."""
        cache_key = hashlib.sha256(token.encode()).hexdigest()
        now = time.monotonic()
        user_data = self._cached(cache_key, now)
        if user_data is not None:
            return user_data
        try:
            user_response = self.supabase.auth.get_user(jwt=token)
        except Exception as e:
            error_msg = str(e)
            if "JWT" in error_msg or "expired" in error_msg.lower() or "invalid" in error_msg.lower():
                raise HTTPException(status_code=401, detail="Invalid or expired token")
            logger.warning(f"Auth lookup failed: {error_msg}")
            raise HTTPException(status_code=401, detail="Authentication failed")
        if not user_response or not user_response.user:
            raise HTTPException(status_code=401, detail="Invalid or expired token")
        user = user_response.user
        user_data = {
            "id": str(user.id),
            "phone": getattr(user, "phone", None),
            "user_metadata": user.user_metadata or {},
            "app_metadata": user.app_metadata or {},
            "created_at": user.created_at,
        }
        with self._lock:
            if len(self._cache) < self.cache_max_size:
                self._cache[cache_key] = (user_data, now + self.cache_ttl_sec)
        return user_data
