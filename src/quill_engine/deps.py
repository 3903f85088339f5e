"""Dependency injection singletons for Quill-Engine."""

from quill_engine.common.config import get_settings
from quill_engine.common.database import DatabaseManager
from quill_engine.audit.service import AuditService
from quill_engine.documents.service import DocumentService
from quill_engine.notifications.email import EmailNotifier, Notifier
from quill_engine.organizations.service import OrganizationService
from quill_engine.rendering.renderer import PdfRenderer, Renderer
from quill_engine.routing.service import RoutingEngine
from quill_engine.storage.blob_store import BlobStore, LocalBlobStore
from quill_engine.templates.service import TemplateService

_db: DatabaseManager | None = None
_organizations: OrganizationService | None = None
_audit: AuditService | None = None
_blob_store: BlobStore | None = None
_notifier: Notifier | None = None
_renderer: Renderer | None = None
_documents: DocumentService | None = None
_templates: TemplateService | None = None
_routing: RoutingEngine | None = None


def get_db() -> DatabaseManager:
    global _db
    if _db is None:
        _db = DatabaseManager(get_settings())
    return _db


def get_organization_service() -> OrganizationService:
    global _organizations
    if _organizations is None:
        _organizations = OrganizationService()
    return _organizations


def get_audit_service() -> AuditService:
    global _audit
    if _audit is None:
        _audit = AuditService(get_settings())
    return _audit


def get_blob_store() -> BlobStore:
    global _blob_store
    if _blob_store is None:
        _blob_store = LocalBlobStore(get_settings().storage_dir)
    return _blob_store


def get_notifier() -> Notifier:
    global _notifier
    if _notifier is None:
        settings = get_settings()
        _notifier = EmailNotifier(
            provider=settings.email_provider,
            api_key=settings.email_api_key,
            from_email=settings.email_from,
            from_name=settings.email_from_name,
        )
    return _notifier


def get_renderer() -> Renderer:
    global _renderer
    if _renderer is None:
        _renderer = PdfRenderer()
    return _renderer


def get_document_service() -> DocumentService:
    global _documents
    if _documents is None:
        _documents = DocumentService(
            get_settings(),
            audit_service=get_audit_service(),
            blob_store=get_blob_store(),
        )
    return _documents


def get_template_service() -> TemplateService:
    global _templates
    if _templates is None:
        _templates = TemplateService(
            get_settings(),
            document_service=get_document_service(),
            blob_store=get_blob_store(),
        )
    return _templates


def get_routing_engine() -> RoutingEngine:
    global _routing
    if _routing is None:
        _routing = RoutingEngine(
            get_settings(),
            audit_service=get_audit_service(),
            document_service=get_document_service(),
            blob_store=get_blob_store(),
            notifier=get_notifier(),
            renderer=get_renderer(),
        )
    return _routing


def set_collaborators(
    notifier: Notifier | None = None,
    renderer: Renderer | None = None,
    blob_store: BlobStore | None = None,
) -> None:
    """Swap external collaborators before the services are first built (for testing)."""
    global _notifier, _renderer, _blob_store
    if notifier is not None:
        _notifier = notifier
    if renderer is not None:
        _renderer = renderer
    if blob_store is not None:
        _blob_store = blob_store


def reset_singletons() -> None:
    """Reset all singletons (for testing)."""
    global _db, _organizations, _audit, _blob_store, _notifier, _renderer
    global _documents, _templates, _routing
    _db = None
    _organizations = None
    _audit = None
    _blob_store = None
    _notifier = None
    _renderer = None
    _documents = None
    _templates = None
    _routing = None
