"""
Dependency wiring for the FastAPI app.

Backends are process-wide singletons chosen from settings; anything not
configured falls back to its in-memory implementation.
"""

from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, Request, Response

from admin_console.config import get_settings
from admin_console.identity import (
    FirebaseAuthBackend,
    IdentityRecord,
    InMemoryAuthBackend,
    Role,
    UserDirectory,
)
from admin_console.mail import InMemoryMailTransport, MailTransport, SmtpMailTransport
from admin_console.notifications import NotificationDispatcher
from admin_console.orders import OrderActions, OrderService
from admin_console.session import AuthRejected, SessionGate, SessionRegistry, SessionStatus
from admin_console.storage import InMemoryStorageClient, S3StorageClient, StorageClient
from admin_console.store import (
    DocumentStore,
    FirestoreDocumentStore,
    InMemoryDocumentStore,
    SqlDocumentStore,
)

logger = logging.getLogger(__name__)

_document_store: DocumentStore | None = None
_storage_client: StorageClient | None = None
_mail_transport: MailTransport | None = None
_auth_backend: InMemoryAuthBackend | FirebaseAuthBackend | None = None
_session_registry: SessionRegistry | None = None


def _ensure_firebase_app() -> None:
    import firebase_admin
    from firebase_admin import credentials

    try:
        firebase_admin.get_app()
        return
    except ValueError:
        pass

    settings = get_settings()
    credential = (
        credentials.Certificate(settings.firebase_credentials_path)
        if settings.firebase_credentials_path
        else None
    )
    options = (
        {"projectId": settings.firebase_project_id}
        if settings.firebase_project_id
        else None
    )
    firebase_admin.initialize_app(credential, options)


def get_document_store() -> DocumentStore:
    """
    Return a singleton document store so state persists across requests.
    """
    global _document_store
    if _document_store is not None:
        return _document_store

    settings = get_settings()
    if settings.use_in_memory_backends or settings.store_backend == "memory":
        _document_store = InMemoryDocumentStore()
    elif settings.store_backend == "sql":
        if settings.database_url:
            _document_store = SqlDocumentStore(settings.database_url)
        else:
            logger.warning("store_backend=sql without database_url; using memory")
            _document_store = InMemoryDocumentStore()
    else:
        _ensure_firebase_app()
        _document_store = FirestoreDocumentStore()
    return _document_store


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client is not None:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.storage_bucket:
        _storage_client = InMemoryStorageClient()
    else:
        _storage_client = S3StorageClient(
            bucket=settings.storage_bucket,
            region=settings.storage_region or "",
            endpoint=settings.storage_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
            public_base_url=settings.storage_public_base_url,
        )
    return _storage_client


def get_mail_transport() -> MailTransport:
    global _mail_transport
    if _mail_transport is not None:
        return _mail_transport

    settings = get_settings()
    if (
        settings.use_in_memory_backends
        or not settings.smtp_host
        or not settings.smtp_user
        or not settings.smtp_password
    ):
        logger.warning("SMTP not configured; mails are recorded in memory only")
        _mail_transport = InMemoryMailTransport()
    else:
        _mail_transport = SmtpMailTransport(
            host=settings.smtp_host,
            port=settings.smtp_port,
            user=settings.smtp_user,
            password=settings.smtp_password,
            from_address=settings.smtp_from,
            from_name=settings.smtp_from_name,
        )
    return _mail_transport


def get_user_directory() -> UserDirectory:
    return UserDirectory(get_document_store())


def get_auth_backend() -> InMemoryAuthBackend | FirebaseAuthBackend:
    global _auth_backend
    if _auth_backend is not None:
        return _auth_backend

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.firebase_api_key:
        backend = InMemoryAuthBackend()
        if settings.dev_admin_email and settings.dev_admin_password:
            principal = backend.create_account(
                settings.dev_admin_email,
                settings.dev_admin_password,
                display_name="Dev Admin",
            )
            get_user_directory().save(
                IdentityRecord(
                    id=principal.uid,
                    email=principal.email,
                    display_name="Dev Admin",
                    role=Role.ADMIN,
                )
            )
            logger.info("Seeded development admin %s", principal.email)
        _auth_backend = backend
    else:
        _auth_backend = FirebaseAuthBackend(api_key=settings.firebase_api_key)
    return _auth_backend


def get_session_registry() -> SessionRegistry:
    global _session_registry
    if _session_registry is not None:
        return _session_registry

    settings = get_settings()
    _session_registry = SessionRegistry(
        provider_factory=get_auth_backend().client,
        directory=get_user_directory(),
        ttl_seconds=settings.session_ttl_seconds,
    )
    return _session_registry


def get_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher(get_document_store(), get_mail_transport())


def get_order_service() -> OrderService:
    return OrderService(get_document_store())


def get_order_actions() -> OrderActions:
    return OrderActions(get_order_service(), get_dispatcher())


def reset_dependencies() -> None:
    """Drop all singletons so the next request rebuilds them (used in tests)."""
    global _document_store, _storage_client, _mail_transport
    global _auth_backend, _session_registry
    _document_store = None
    _storage_client = None
    _mail_transport = None
    _auth_backend = None
    _session_registry = None


def get_session_gate(
    request: Request,
    response: Response,
    registry: SessionRegistry = Depends(get_session_registry),
) -> SessionGate:
    """Look up the caller's gate by cookie, opening a new session if needed."""
    settings = get_settings()
    gate = registry.get(request.cookies.get(settings.session_cookie_name))
    if gate is None:
        session_id, gate = registry.create()
        response.set_cookie(
            settings.session_cookie_name,
            session_id,
            max_age=settings.session_ttl_seconds,
            httponly=True,
            samesite="lax",
            secure=settings.session_cookie_secure,
        )
    return gate


def require_admin(gate: SessionGate = Depends(get_session_gate)) -> IdentityRecord:
    try:
        return gate.require_admin()
    except AuthRejected as e:
        if e.session.status == SessionStatus.REJECTED:
            raise HTTPException(status_code=403, detail=e.session.last_error)
        raise HTTPException(status_code=401, detail="Sign-in required")
