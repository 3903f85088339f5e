"""Shared test fixtures for Quill-Engine."""

import os
from io import BytesIO

import pytest
from httpx import ASGITransport, AsyncClient
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas

from quill_engine.common.config import QuillSettings
from quill_engine.notifications.email import SignatureMessage


HMAC_KEY = "test-hmac-key-for-unit-tests"
SUPER_ADMIN_KEY = "test-super-admin-key"


def make_settings(**overrides) -> QuillSettings:
    defaults = {
        "hmac_key": HMAC_KEY,
        "super_admin_key": SUPER_ADMIN_KEY,
        "db_url": "sqlite+aiosqlite://",
    }
    defaults.update(overrides)
    return QuillSettings(**defaults)


def make_pdf(pages: int = 1, text: str = "Agreement") -> bytes:
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    for page in range(pages):
        c.drawString(72, 720, f"{text} page {page + 1}")
        c.showPage()
    c.save()
    return buf.getvalue()


class RecordingNotifier:
    """Collects every message instead of delivering it."""

    def __init__(self):
        self.sent: list[tuple[str, SignatureMessage]] = []

    async def _record(self, kind: str, msg: SignatureMessage) -> bool:
        self.sent.append((kind, msg))
        return True

    async def send_signature_request(self, msg):
        return await self._record("request", msg)

    async def send_signature_reminder(self, msg):
        return await self._record("reminder", msg)

    async def send_signature_completed(self, msg):
        return await self._record("signed", msg)

    async def send_document_completed(self, msg):
        return await self._record("completed", msg)

    async def send_signature_declined(self, msg):
        return await self._record("declined", msg)

    def of_kind(self, kind: str) -> list[SignatureMessage]:
        return [m for k, m in self.sent if k == kind]


class CountingRenderer:
    """Returns the source PDF unchanged and counts calls."""

    def __init__(self, fail: bool = False):
        self.calls = 0
        self.fail = fail

    async def render(self, request) -> bytes:
        self.calls += 1
        if self.fail:
            from quill_engine.rendering.renderer import RenderError
            raise RenderError("boom")
        return request.source_pdf


@pytest.fixture
def pdf_bytes():
    return make_pdf()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def renderer():
    return CountingRenderer()


@pytest.fixture
def app(tmp_path, notifier, renderer):
    """Create a test app with in-memory DB and local blob storage under tmp_path."""
    os.environ["QUILL_DB_URL"] = "sqlite+aiosqlite://"
    os.environ["QUILL_HMAC_KEY"] = HMAC_KEY
    os.environ["QUILL_SUPER_ADMIN_KEY"] = SUPER_ADMIN_KEY
    os.environ["QUILL_STORAGE_DIR"] = str(tmp_path / "blobs")

    # Clear caches and singletons so new env vars take effect
    from quill_engine.common.config import get_settings
    get_settings.cache_clear()

    from quill_engine.deps import reset_singletons, set_collaborators
    reset_singletons()
    set_collaborators(notifier=notifier, renderer=renderer)

    from quill_engine.app import create_app
    return create_app()


@pytest.fixture
async def client(app):
    # Manually init DB since ASGITransport doesn't run lifespan
    from quill_engine.deps import get_db
    db = get_db()
    await db.init()
    await db.create_all()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await db.close()


@pytest.fixture
def super_admin_headers():
    return {"X-Quill-Api-Key": SUPER_ADMIN_KEY}


@pytest.fixture
async def org_headers(client, super_admin_headers):
    """Headers carrying a freshly created organization's API key."""
    resp = await client.post(
        "/organizations",
        json={
            "name": "Acme Legal", "slug": "acme",
            "sender_name": "Acme Legal", "sender_email": "legal@acme.test",
        },
        headers=super_admin_headers,
    )
    assert resp.status_code == 201
    return {"X-Quill-Api-Key": resp.json()["api_key"]}


# ── Service-level fixtures (no HTTP) ──


class Stack:
    """Services wired the way deps.py wires them, over a private database."""

    def __init__(self, settings, db, notifier, renderer):
        from quill_engine.audit.service import AuditService
        from quill_engine.documents.service import DocumentService
        from quill_engine.organizations.service import OrganizationService
        from quill_engine.routing.service import RoutingEngine
        from quill_engine.storage.blob_store import LocalBlobStore
        from quill_engine.templates.service import TemplateService

        self.settings = settings
        self.db = db
        self.notifier = notifier
        self.renderer = renderer
        self.blobs = LocalBlobStore(settings.storage_dir)
        self.audit = AuditService(settings)
        self.organizations = OrganizationService()
        self.documents = DocumentService(settings, self.audit, self.blobs)
        self.templates = TemplateService(settings, self.documents, self.blobs)
        self.engine = RoutingEngine(
            settings, self.audit, self.documents, self.blobs,
            notifier=notifier, renderer=renderer,
        )

    async def organization(self, slug: str = "acme") -> str:
        async with self.db.get_session() as session:
            org, _key = await self.organizations.create_organization(
                session, name=slug.title(), slug=slug,
                sender_name="Sender", sender_email="sender@acme.test",
            )
            return org.id

    async def draft(
        self,
        org_id: str,
        recipients: list[dict],
        fields: list[dict] | None = None,
        routing_mode: str = "parallel",
        pdf: bytes | None = None,
        **metadata,
    ) -> str:
        """Create a draft document with recipients and fields; returns its id."""
        async with self.db.get_session() as session:
            doc = await self.documents.create_document(
                session, org_id, title=metadata.pop("title", "Contract"),
                routing_mode=routing_mode, **metadata,
            )
            if pdf is not None:
                await self.documents.attach_file(
                    session, org_id, doc.id, pdf, "contract.pdf", "application/pdf",
                )
            await self.documents.replace_recipients(session, org_id, doc.id, recipients)
            if fields:
                await self.documents.replace_fields(session, org_id, doc.id, fields)
            return doc.id

    async def send(self, org_id: str, document_id: str):
        async with self.db.get_session() as session:
            result = await self.engine.send(session, org_id, document_id)
        await self.engine.after_commit(self.db, result)
        return {a.recipient.email: a.token for a in result.activations}

    async def submit(self, token: str, values: list[dict] | None = None):
        async with self.db.get_session() as session:
            result = await self.engine.submit(session, token, values or [])
        await self.engine.after_commit(self.db, result)
        return result

    async def recipients(self, document_id: str) -> dict:
        async with self.db.get_session() as session:
            rows = await self.documents.get_recipients(session, document_id)
            return {r.email: r for r in rows}

    async def document(self, org_id: str, document_id: str):
        async with self.db.get_session() as session:
            return await self.documents.get_document(session, org_id, document_id)

    async def events(self, document_id: str, event_type: str | None = None):
        async with self.db.get_session() as session:
            return await self.audit.get_events(session, document_id, event_type=event_type)


def field(field_type: str = "signature", role_name: str | None = None, **extra) -> dict:
    item = {
        "field_type": field_type, "page_number": 1,
        "x_position": 10, "y_position": 10, "width": 20, "height": 5,
        "role_name": role_name,
    }
    item.update(extra)
    return item


@pytest.fixture
def settings(tmp_path):
    return make_settings(storage_dir=str(tmp_path / "blobs"))


@pytest.fixture
async def stack(settings, notifier, renderer):
    from quill_engine.common.database import DatabaseManager

    db = DatabaseManager(settings)
    await db.init()
    await db.create_all()
    yield Stack(settings, db, notifier, renderer)
    await db.close()


@pytest.fixture
def make_field():
    return field


SIGNATURE_PNG = (
    "data:image/png;base64,"
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="
)


@pytest.fixture
def signature_png():
    return SIGNATURE_PNG


@pytest.fixture
async def file_stack(tmp_path, notifier, renderer):
    """A stack over an on-disk SQLite file so concurrent sessions get their own connections."""
    from quill_engine.common.database import DatabaseManager

    settings = make_settings(
        db_url=f"sqlite+aiosqlite:///{tmp_path / 'quill.db'}",
        storage_dir=str(tmp_path / "blobs"),
    )
    db = DatabaseManager(settings)
    await db.init()
    await db.create_all()
    yield Stack(settings, db, notifier, renderer)
    await db.close()
