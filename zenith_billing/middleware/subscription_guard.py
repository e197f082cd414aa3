"""
Subscription status gate for dashboard routes.

Every request to a guarded view resolves the caller's identity and asks the
authoritative check whether the subscription is active:

    no identity -> redirect to LOGIN_URL
    inactive    -> redirect to PAYWALL_URL
    active      -> the view runs

Answers are cached per user for a few seconds and dropped as soon as a
reconciliation sends subscription_changed for that user.
"""

import logging
import threading
import time
from functools import wraps
from urllib.parse import urlencode

from flask import current_app, g, redirect, request
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError
from sqlalchemy.exc import SQLAlchemyError

from zenith_billing.errors import AuthenticationError
from zenith_billing.extensions import db
from zenith_billing.services import subscription_service
from zenith_billing.services.identity_service import load_identity
from zenith_billing.signals import subscription_changed

logger = logging.getLogger(__name__)

ALLOWED = "allowed"
BLOCKED = "blocked"
UNAUTHENTICATED = "unauthenticated"

EXTENSION_KEY = "subscription_gate"


class SubscriptionStatusCache:
    """Per-user TTL cache of the authoritative answer."""

    def __init__(self, ttl_seconds=5.0, clock=time.monotonic, max_entries=10000):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.max_entries = max_entries
        self._entries = {}
        self._lock = threading.Lock()

    def __len__(self):
        return len(self._entries)

    def get(self, user_id):
        if self.ttl_seconds <= 0:
            return None
        with self._lock:
            entry = self._entries.get(user_id)
            if entry is None:
                return None
            active, expires_at = entry
            if self.clock() >= expires_at:
                del self._entries[user_id]
                return None
            return active

    def set(self, user_id, active):
        if self.ttl_seconds <= 0:
            return
        with self._lock:
            now = self.clock()
            self._entries = {
                key: entry for key, entry in self._entries.items() if entry[1] > now
            }
            if user_id not in self._entries and len(self._entries) >= self.max_entries:
                # evict the entry closest to expiry
                oldest = min(self._entries, key=lambda key: self._entries[key][1])
                del self._entries[oldest]
            self._entries[user_id] = (active, now + self.ttl_seconds)

    def invalidate(self, user_id=None):
        with self._lock:
            if user_id is None:
                self._entries.clear()
            else:
                self._entries.pop(user_id, None)


def heal_profile_flag(user_id):
    """Authoritative check says active: make the denormalised flag agree."""
    try:
        if subscription_service.set_profile_flag(user_id, True):
            db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.warning("Could not correct profile subscription flag", exc_info=True, extra={"user_id": user_id})


class SubscriptionGate:

    def __init__(self, app=None, cache=None):
        self.cache = cache
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        if self.cache is None:
            self.cache = SubscriptionStatusCache(
                app.config.get("SUBSCRIPTION_STATUS_CACHE_SECONDS", 5),
                max_entries=app.config.get("SUBSCRIPTION_STATUS_CACHE_MAX_ENTRIES", 10000),
            )
        # weak receiver: app.extensions keeps the gate alive
        subscription_changed.connect(self._on_subscription_changed)
        app.extensions[EXTENSION_KEY] = self

    def _on_subscription_changed(self, user_id, **kwargs):
        self.cache.invalidate(user_id)

    def current_user_id(self):
        try:
            verify_jwt_in_request(optional=True)
        except (JWTExtendedException, PyJWTError):
            return None
        user_id = get_jwt_identity()
        if not user_id:
            return None
        try:
            return load_identity(user_id).user_id
        except AuthenticationError:
            return None

    def check(self, user_id):
        cached = self.cache.get(user_id)
        if cached is not None:
            return cached
        active = subscription_service.is_subscription_active(user_id)
        if active:
            heal_profile_flag(user_id)
        self.cache.set(user_id, active)
        return active

    def evaluate(self):
        user_id = self.current_user_id()
        if user_id is None:
            return UNAUTHENTICATED, None
        g.subscription_user_id = user_id
        return (ALLOWED if self.check(user_id) else BLOCKED), user_id

    def enforce(self):
        """before_request hook: returns a redirect to short-circuit, None to continue."""
        state, user_id = self.evaluate()
        if state == UNAUTHENTICATED:
            login_url = current_app.config.get("LOGIN_URL", "/login")
            return redirect(f"{login_url}?{urlencode({'next': request.full_path.rstrip('?')})}")
        if state == BLOCKED:
            logger.info("Subscription required", extra={"user_id": user_id, "path": request.path})
            return redirect(current_app.config.get("PAYWALL_URL", "/payment-required"))
        return None


def get_gate() -> SubscriptionGate:
    return current_app.extensions[EXTENSION_KEY]


def subscription_required(fn):
    """Decorator form of the gate for individual views."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        response = get_gate().enforce()
        if response is not None:
            return response
        return fn(*args, **kwargs)
    return wrapper
