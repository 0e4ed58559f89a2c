"""
Session gate: admits a principal to the admin surface only when its identity
record carries the admin role.

A gate owns one identity provider client and the in-memory `Session` derived
from it. Gates are created and looked up through a `SessionRegistry`, which the
application builds once and hands to the HTTP layer; cookies carry only the
opaque registry key.
"""

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Dict, Optional

from admin_console.identity import (
    AuthFailure,
    AuthProviderError,
    IdentityProvider,
    IdentityRecord,
    Principal,
    Rejected,
    UserDirectory,
    check_admin_access,
)
from admin_console.store import DocumentStoreError

logger = logging.getLogger(__name__)

FAILURE_MESSAGES = {
    AuthFailure.INVALID_CREDENTIALS: "Invalid email or password",
    AuthFailure.INVALID_EMAIL: "Invalid email address",
    AuthFailure.RATE_LIMITED: "Too many sign-in attempts. Please wait and try again.",
    AuthFailure.UNKNOWN: "Sign-in failed",
}
LOOKUP_FAILED_MESSAGE = "Failed to load user record"


class SessionStatus(str, Enum):
    RESOLVING = "resolving"
    AUTHENTICATED = "authenticated"
    REJECTED = "rejected"
    UNAUTHENTICATED = "unauthenticated"


@dataclass
class Session:
    status: SessionStatus = SessionStatus.RESOLVING
    identity: Optional[IdentityRecord] = None
    last_error: Optional[str] = None


class AuthRejected(Exception):
    """The caller has no authenticated admin session."""

    def __init__(self, session: Session):
        super().__init__(session.last_error or session.status.value)
        self.session = session


class SessionGate:
    def __init__(self, provider: IdentityProvider, directory: UserDirectory):
        self._provider = provider
        self._directory = directory
        self._session = Session()
        # Set while the gate drives the provider itself, so the provider's
        # state-change callback does not re-run the role check.
        self._settling = False
        self._unsubscribe = provider.on_auth_state_changed(self._on_auth_state_changed)

    @property
    def session(self) -> Session:
        return replace(self._session)

    @property
    def status(self) -> SessionStatus:
        return self._session.status

    @property
    def identity(self) -> Optional[IdentityRecord]:
        return self._session.identity

    @property
    def last_error(self) -> Optional[str]:
        return self._session.last_error

    def require_admin(self) -> IdentityRecord:
        if self._session.status != SessionStatus.AUTHENTICATED:
            raise AuthRejected(self.session)
        return self._session.identity

    def sign_in(self, email: str, password: str) -> bool:
        previous = self._session
        self._session = Session(SessionStatus.RESOLVING)
        self._settling = True
        try:
            principal = self._provider.sign_in(email, password)
        except AuthProviderError as e:
            logger.info("Sign-in failed for %s: %s", email, e.code)
            self._settle_failed_sign_in(previous, FAILURE_MESSAGES[e.failure])
            return False
        except Exception:
            logger.exception("Unexpected identity provider failure during sign-in")
            self._settle_failed_sign_in(previous, FAILURE_MESSAGES[AuthFailure.UNKNOWN])
            return False
        finally:
            self._settling = False
        return self._admit(principal)

    def sign_out(self) -> None:
        self._settling = True
        try:
            self._provider.sign_out()
        except Exception:
            logger.exception("Identity provider sign-out failed")
        finally:
            self._settling = False
        if self._session.identity is not None:
            logger.info("Signed out %s", self._session.identity.id)
        self._session = Session(SessionStatus.UNAUTHENTICATED)

    def close(self) -> None:
        self._unsubscribe()

    def _settle_failed_sign_in(self, previous: Session, message: str) -> None:
        # A failed attempt leaves an existing provider session in place.
        if previous.status == SessionStatus.AUTHENTICATED:
            self._session = replace(previous, last_error=message)
        else:
            self._session = Session(SessionStatus.UNAUTHENTICATED, last_error=message)

    def _on_auth_state_changed(self, principal: Optional[Principal]) -> None:
        if self._settling:
            return
        if principal is None:
            # Rejection already signed the provider out; keep its reason.
            if self._session.status != SessionStatus.REJECTED:
                self._session = Session(SessionStatus.UNAUTHENTICATED)
            return
        self._admit(principal)

    def _admit(self, principal: Principal) -> bool:
        try:
            record = self._directory.get(principal.uid)
        except DocumentStoreError:
            logger.exception("Failed to load identity record for %s", principal.uid)
            return self._reject(principal, LOOKUP_FAILED_MESSAGE)
        except Exception:
            # Malformed records and client-level errors end the session the same way.
            logger.exception(
                "Unexpected error loading identity record for %s", principal.uid
            )
            return self._reject(principal, LOOKUP_FAILED_MESSAGE)

        decision = check_admin_access(record)
        if isinstance(decision, Rejected):
            return self._reject(principal, decision.reason)

        identity = replace(
            decision.record,
            email=decision.record.email or principal.email or "",
            display_name=decision.record.display_name or principal.display_name or "",
        )
        self._session = Session(SessionStatus.AUTHENTICATED, identity=identity)
        logger.info("Admin session established for %s", principal.uid)
        return True

    def _reject(self, principal: Principal, reason: str) -> bool:
        self._settling = True
        try:
            self._provider.sign_out()
        finally:
            self._settling = False
        self._session = Session(SessionStatus.REJECTED, last_error=reason)
        logger.warning("Rejected admin session for %s: %s", principal.uid, reason)
        return False


@dataclass
class _Entry:
    gate: SessionGate
    expires_at: float


class SessionRegistry:
    """Maps opaque session ids to gates with a sliding expiry."""

    def __init__(
        self,
        provider_factory: Callable[[], IdentityProvider],
        directory: UserDirectory,
        ttl_seconds: int = 8 * 3600,
        clock: Callable[[], float] = time.time,
    ):
        self._provider_factory = provider_factory
        self._directory = directory
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}

    def create(self) -> tuple[str, SessionGate]:
        now = self._clock()
        self._purge_expired(now)
        session_id = secrets.token_urlsafe(24)
        gate = SessionGate(self._provider_factory(), self._directory)
        self._entries[session_id] = _Entry(gate, now + self._ttl_seconds)
        return session_id, gate

    def _purge_expired(self, now: float) -> None:
        expired = [sid for sid, entry in self._entries.items() if entry.expires_at < now]
        for session_id in expired:
            self.discard(session_id)
        if expired:
            logger.info("Discarded %d expired sessions", len(expired))

    def get(self, session_id: Optional[str]) -> Optional[SessionGate]:
        if not session_id:
            return None
        entry = self._entries.get(session_id)
        if entry is None:
            return None
        now = self._clock()
        if entry.expires_at < now:
            self.discard(session_id)
            return None
        entry.expires_at = now + self._ttl_seconds
        return entry.gate

    def discard(self, session_id: str) -> None:
        entry = self._entries.pop(session_id, None)
        if entry is not None:
            entry.gate.close()

    def __len__(self) -> int:
        return len(self._entries)
