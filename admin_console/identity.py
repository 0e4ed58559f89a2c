"""
Identity provider clients, identity records and the admin role check.
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Protocol

import requests
from dacite import Config, from_dict

from admin_console.json_utils import convert_keys
from admin_console.store import DocumentStore, paginate, timestamp

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"

FIREBASE_SIGN_IN_URL = (
    "https://identitytoolkit.googleapis.com/v1/accounts:signInWithPassword"
)
REQUEST_TIMEOUT = 30  # seconds

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class Role(str, Enum):
    VIEWER = "viewer"
    TRAINER = "trainer"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value) -> "Role":
        """Unknown or missing roles read as viewer."""
        try:
            return cls(value)
        except ValueError:
            return cls.VIEWER


def _iso(value) -> Optional[str]:
    if value is None:
        return None
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


@dataclass
class IdentityRecord:
    """Stored representation of a principal in the `users` collection."""

    id: str
    email: str = ""
    display_name: str = ""
    role: Role = Role.VIEWER
    verification_status: str = "unverified"
    created_at: Optional[str] = None

    @classmethod
    def from_document(cls, doc: dict) -> "IdentityRecord":
        data = convert_keys(doc, "camel_to_snake")
        data["email"] = data.get("email") or ""
        data["display_name"] = data.get("display_name") or ""
        data["role"] = Role.parse(data.get("role"))
        data["verification_status"] = data.get("verification_status") or "unverified"
        data["created_at"] = _iso(data.get("created_at"))
        return from_dict(data_class=cls, data=data, config=Config(check_types=False))

    def to_document(self) -> dict:
        return {
            "email": self.email,
            "displayName": self.display_name,
            "role": self.role.value,
            "verificationStatus": self.verification_status,
            "createdAt": self.created_at,
        }


@dataclass(frozen=True)
class Principal:
    """The logged-in principal as reported by the identity provider."""

    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = None


class AuthFailure(str, Enum):
    INVALID_CREDENTIALS = "invalid_credentials"
    INVALID_EMAIL = "invalid_email"
    RATE_LIMITED = "rate_limited"
    UNKNOWN = "unknown"


_FAILURE_CODES = {
    "auth/user-not-found": AuthFailure.INVALID_CREDENTIALS,
    "auth/wrong-password": AuthFailure.INVALID_CREDENTIALS,
    "auth/invalid-credential": AuthFailure.INVALID_CREDENTIALS,
    "EMAIL_NOT_FOUND": AuthFailure.INVALID_CREDENTIALS,
    "INVALID_PASSWORD": AuthFailure.INVALID_CREDENTIALS,
    "INVALID_LOGIN_CREDENTIALS": AuthFailure.INVALID_CREDENTIALS,
    "auth/invalid-email": AuthFailure.INVALID_EMAIL,
    "INVALID_EMAIL": AuthFailure.INVALID_EMAIL,
    "auth/too-many-requests": AuthFailure.RATE_LIMITED,
    "TOO_MANY_ATTEMPTS_TRY_LATER": AuthFailure.RATE_LIMITED,
}


def classify_provider_error(code: str) -> AuthFailure:
    # Identity Toolkit appends detail after " : ", e.g. "TOO_MANY_ATTEMPTS_TRY_LATER : ..."
    return _FAILURE_CODES.get(code.split(" : ")[0].strip(), AuthFailure.UNKNOWN)


class AuthProviderError(Exception):
    """Provider-level sign-in failure (network, credentials, throttling)."""

    def __init__(self, code: str, message: Optional[str] = None):
        super().__init__(message or code)
        self.code = code

    @property
    def failure(self) -> AuthFailure:
        return classify_provider_error(self.code)


AuthStateListener = Callable[[Optional[Principal]], None]


class IdentityProvider(Protocol):
    """Per-session client of the identity provider."""

    def sign_in(self, email: str, password: str) -> Principal:
        ...

    def sign_out(self) -> None:
        ...

    def current_principal(self) -> Optional[Principal]:
        ...

    def on_auth_state_changed(self, listener: AuthStateListener) -> Callable[[], None]:
        ...


class _AuthStateNotifier:
    """Holds the current principal and notifies subscribers when it changes."""

    def __init__(self):
        self._current: Optional[Principal] = None
        self._listeners: list[AuthStateListener] = []

    def current_principal(self) -> Optional[Principal]:
        return self._current

    def on_auth_state_changed(self, listener: AuthStateListener) -> Callable[[], None]:
        """Subscribe; the listener is called immediately with the current principal."""
        self._listeners.append(listener)
        listener(self._current)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_current(self, principal: Optional[Principal]) -> None:
        if principal == self._current:
            return
        self._current = principal
        for listener in list(self._listeners):
            listener(principal)


@dataclass
class _Account:
    uid: str
    email: str
    password: str
    display_name: Optional[str] = None


@dataclass
class InMemoryAuthBackend:
    """Shared account table standing in for the identity provider in dev/tests."""

    max_failed_attempts: int = 5
    accounts: dict[str, _Account] = field(default_factory=dict)
    failed_attempts: dict[str, int] = field(default_factory=dict)

    def create_account(
        self,
        email: str,
        password: str,
        *,
        uid: Optional[str] = None,
        display_name: Optional[str] = None,
    ) -> Principal:
        account = _Account(
            uid=uid or uuid.uuid4().hex,
            email=email.lower(),
            password=password,
            display_name=display_name,
        )
        self.accounts[account.email] = account
        return Principal(account.uid, account.email, account.display_name)

    def authenticate(self, email: str, password: str) -> Principal:
        email = (email or "").strip().lower()
        if not EMAIL_PATTERN.match(email):
            raise AuthProviderError("auth/invalid-email")
        if self.failed_attempts.get(email, 0) >= self.max_failed_attempts:
            raise AuthProviderError("auth/too-many-requests")
        account = self.accounts.get(email)
        if account is None or account.password != password:
            self.failed_attempts[email] = self.failed_attempts.get(email, 0) + 1
            raise AuthProviderError("auth/invalid-credential")
        self.failed_attempts.pop(email, None)
        return Principal(account.uid, account.email, account.display_name)

    def client(self) -> "InMemoryIdentityProvider":
        return InMemoryIdentityProvider(self)

    def reset(self) -> None:
        self.accounts.clear()
        self.failed_attempts.clear()


class InMemoryIdentityProvider(_AuthStateNotifier):
    def __init__(self, backend: InMemoryAuthBackend):
        super().__init__()
        self._backend = backend

    def sign_in(self, email: str, password: str) -> Principal:
        principal = self._backend.authenticate(email, password)
        self._set_current(principal)
        return principal

    def sign_out(self) -> None:
        self._set_current(None)


@dataclass
class FirebaseAuthBackend:
    """Factory for Identity Toolkit clients sharing one API key and HTTP session."""

    api_key: str
    http: requests.Session = field(default_factory=requests.Session)

    def client(self) -> "FirebaseIdentityProvider":
        return FirebaseIdentityProvider(self.api_key, http=self.http)


class FirebaseIdentityProvider(_AuthStateNotifier):
    """
    Email/password sign-in against the Firebase Identity Toolkit REST API.

    Tokens are held for the lifetime of this client only; signing out discards
    them, it does not revoke the principal's sessions elsewhere.
    """

    def __init__(self, api_key: str, http: Optional[requests.Session] = None):
        super().__init__()
        self._api_key = api_key
        self._http = http or requests.Session()
        self._id_token: Optional[str] = None
        self._refresh_token: Optional[str] = None

    def sign_in(self, email: str, password: str) -> Principal:
        try:
            response = self._http.post(
                FIREBASE_SIGN_IN_URL,
                params={"key": self._api_key},
                json={"email": email, "password": password, "returnSecureToken": True},
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            raise AuthProviderError("auth/network-request-failed", str(e)) from e

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if response.status_code != 200:
            message = (payload.get("error") or {}).get("message", "UNKNOWN")
            raise AuthProviderError(message.split(" : ")[0].strip(), message)

        principal = Principal(
            uid=payload["localId"],
            email=payload.get("email"),
            display_name=payload.get("displayName") or None,
        )
        self._id_token = payload.get("idToken")
        self._refresh_token = payload.get("refreshToken")
        self._set_current(principal)
        return principal

    def sign_out(self) -> None:
        self._id_token = None
        self._refresh_token = None
        self._set_current(None)


MISSING_RECORD_MESSAGE = "User record not found"
NO_ADMIN_ACCESS_MESSAGE = "No admin access"


@dataclass(frozen=True)
class Admitted:
    record: IdentityRecord


@dataclass(frozen=True)
class Rejected:
    reason: str


def check_admin_access(record: Optional[IdentityRecord]) -> Admitted | Rejected:
    """Only an existing record with the admin role is admitted."""
    if record is None:
        return Rejected(MISSING_RECORD_MESSAGE)
    if record.role != Role.ADMIN:
        return Rejected(NO_ADMIN_ACCESS_MESSAGE)
    return Admitted(record)


class UserNotFound(Exception):
    pass


class UserDirectory:
    """Identity records stored in the `users` collection."""

    def __init__(self, store: DocumentStore):
        self._store = store

    def get(self, uid: str) -> Optional[IdentityRecord]:
        doc = self._store.get_by_id(USERS_COLLECTION, uid)
        return IdentityRecord.from_document(doc) if doc else None

    def save(self, record: IdentityRecord) -> IdentityRecord:
        if record.created_at is None:
            record.created_at = timestamp()
        self._store.upsert(USERS_COLLECTION, record.id, record.to_document(), merge=True)
        return record

    def list_users(
        self,
        *,
        role: Optional[Role] = None,
        search: Optional[str] = None,
        page_size: int = 50,
        cursor: Optional[str] = None,
    ) -> tuple[list[IdentityRecord], Optional[str]]:
        """
        Return one page of users, newest first.

        Role and search filters apply to the fetched page, so a filtered page
        can hold fewer than `page_size` entries while `next_cursor` is set.
        """
        page = paginate(
            self._store,
            USERS_COLLECTION,
            order_by=("createdAt", "desc"),
            page_size=page_size,
            cursor=cursor,
        )
        needle = (search or "").strip().lower()
        users = []
        for doc in page.items:
            record = IdentityRecord.from_document(doc)
            if role is not None and record.role != role:
                continue
            haystack = f"{record.display_name}\n{record.email}".lower()
            if needle and needle not in haystack:
                continue
            users.append(record)
        return users, page.next_cursor

    def update_role(self, uid: str, role: Role) -> IdentityRecord:
        if self._store.get_by_id(USERS_COLLECTION, uid) is None:
            raise UserNotFound(uid)
        self._store.upsert(
            USERS_COLLECTION,
            uid,
            {"role": role.value, "updatedAt": timestamp()},
            merge=True,
        )
        logger.info("Updated role of user %s to %s", uid, role.value)
        return self.get(uid)
