"""Pytest configuration and shared fixtures."""

import os
import posixpath
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence
from uuid import UUID, uuid4

import pytest
import pytest_asyncio

# Set required environment variables for testing BEFORE importing app
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-role-key")
os.environ.setdefault("OPENROUTER_API_KEY", "test-openrouter-key")
os.environ.setdefault("RESEND_API_KEY", "test-resend-key")
os.environ.setdefault("BUSINESS_TIMEZONE", "America/Sao_Paulo")
os.environ.setdefault("DELIVERY_SEND_INTERVAL", "0")
os.environ.setdefault("TEMPORAL_ENABLED", "false")

from fastapi.testclient import TestClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.database import Base
from app.core.exceptions import DuplicateFileNameError, StorageError
from app.database import models
from app.main import app


@pytest.fixture
def test_client() -> TestClient:
    """Create FastAPI test client.

    Returns:
        TestClient: FastAPI test client instance
    """
    return TestClient(app)


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    """Ensure FastAPI dependency overrides are reset between tests."""
    app.dependency_overrides = {}
    yield
    app.dependency_overrides = {}


@pytest_asyncio.fixture
async def db_session():
    """In-memory SQLite session with the full schema.

    SQLite needs explicit BEGIN handling for SAVEPOINTs to behave.
    """
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)

    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_maker = async_sessionmaker(engine, expire_on_commit=False)
    async with session_maker() as session:
        yield session

    await engine.dispose()


class FakeStorage:
    """In-memory stand-in for the Supabase-backed StorageService."""

    def __init__(self):
        self.files: Dict[str, bytes] = {}
        self.failing_moves: set = set()
        self.moves: List[tuple] = []

    async def upload_file(self, content: bytes, path: str, content_type: str = "application/octet-stream"):
        if path in self.files:
            raise DuplicateFileNameError(f"File already exists: {path}")
        self.files[path] = content
        return {"Key": path}

    async def download_file(self, path: str) -> bytes:
        if path not in self.files:
            raise StorageError(f"Download failed for {path}: 404")
        return self.files[path]

    async def list_files(self, prefix: str, search: Optional[str] = None, limit: int = 100):
        entries = []
        for path in self.files:
            folder, name = posixpath.split(path)
            if folder == prefix and (not search or search in name):
                entries.append({"name": name})
        return entries[:limit]

    async def file_exists(self, path: str) -> bool:
        return path in self.files

    async def move_file(self, source: str, destination: str) -> None:
        if source in self.failing_moves:
            raise StorageError(f"Move failed: simulated outage for {source}")
        if destination in self.files:
            raise DuplicateFileNameError(f"File already exists: {destination}")
        if source not in self.files:
            raise StorageError(f"Move failed: {source} not found")
        self.files[destination] = self.files.pop(source)
        self.moves.append((source, destination))

    async def remove_files(self, paths: Sequence[str]) -> None:
        for path in paths:
            self.files.pop(path, None)

    async def create_download_url(self, path: str, expires_in: Optional[int] = None) -> str:
        return f"https://test.supabase.co/storage/v1/object/sign/documents/{path}?token=test"


@pytest.fixture
def fake_storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def org_id() -> UUID:
    return uuid4()


class Seed:
    """Inserts rows for tests. Every helper commits."""

    def __init__(self, session, org_id: UUID):
        self.session = session
        self.org_id = org_id

    async def _add(self, row):
        self.session.add(row)
        await self.session.commit()
        return row

    async def client(self, name: str = "Ana", tax_id: Optional[str] = "529.982.247-25", **kwargs) -> models.Client:
        kwargs.setdefault("email", "ana@example.com")
        kwargs.setdefault("active", True)
        return await self._add(models.Client(org_id=self.org_id, name=name, tax_id=tax_id, **kwargs))

    async def obligation(self, name: str = "Carnê Leão", **kwargs) -> models.Obligation:
        kwargs.setdefault("frequency", "monthly")
        kwargs.setdefault("internal_target_day", 15)
        kwargs.setdefault("fiscal_code", "0190")
        return await self._add(models.Obligation(org_id=self.org_id, name=name, **kwargs))

    async def link(self, client, obligation, **kwargs) -> models.ClientObligation:
        kwargs.setdefault("active", True)
        return await self._add(
            models.ClientObligation(client_id=client.id, obligation_id=obligation.id, **kwargs)
        )

    async def instance(self, client, obligation, competence: str = "03/2025", **kwargs) -> models.ObligationInstance:
        kwargs.setdefault("due_at", datetime(2025, 3, 31).date())
        kwargs.setdefault("internal_target_at", datetime(2025, 3, 15).date())
        kwargs.setdefault("status", "pending")
        return await self._add(
            models.ObligationInstance(
                client_id=client.id, obligation_id=obligation.id, competence=competence, **kwargs
            )
        )

    async def upload(self, storage: Optional[FakeStorage] = None, file_name: str = "darf.pdf", **kwargs) -> models.StagingUpload:
        path = kwargs.pop("file_path", f"{self.org_id}/staging/{uuid4().hex}-{file_name}")
        if storage is not None:
            storage.files[path] = b"%PDF-1.4 test"
        kwargs.setdefault("state", "pending")
        kwargs.setdefault("ocr_status", "pending")
        kwargs.setdefault("mime_type", "application/pdf")
        return await self._add(
            models.StagingUpload(org_id=self.org_id, file_name=file_name, file_path=path, **kwargs)
        )

    async def document(self, client, obligation, competence: str = "03/2025", **kwargs) -> models.Document:
        kwargs.setdefault("file_name", "darf.pdf")
        kwargs.setdefault("file_path", f"{self.org_id}/{client.id}/darf.pdf")
        kwargs.setdefault("delivered_at", datetime(2025, 3, 10, 12, tzinfo=timezone.utc))
        return await self._add(
            models.Document(
                org_id=self.org_id,
                client_id=client.id,
                obligation_id=obligation.id,
                competence=competence,
                **kwargs,
            )
        )


@pytest.fixture
def seed(db_session, org_id) -> Seed:
    return Seed(db_session, org_id)


@pytest.fixture
def sample_pdf_content() -> bytes:
    """Minimal valid PDF header."""
    return b"%PDF-1.4\n%\xe2\xe3\xcf\xd3\n1 0 obj\n<<\n/Type /Catalog\n/Pages 2 0 R\n>>\nendobj\n"
