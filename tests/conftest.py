import io
import os
from datetime import datetime, timezone

# Keep the module-level app in app.py off Supabase and on an in-memory database.
os.environ["USE_SUPABASE"] = "0"
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from PIL import Image

from app import create_app
from daydrop.clock import ReferenceClock
from daydrop.config import TripConfig
from daydrop.errors import RemoteFailure
from daydrop.identity import SESSION_KEY, Identity
from daydrop.repository import SqlContentRepository
from daydrop.service import CLOCK_KEY

ADMIN = Identity(uid="admin-uid", display_name="Andrew", email="admin@example.com", photo_url="https://img/a.png")
VIEWER = Identity(uid="viewer-uid", display_name="Alyssa", email="viewer@example.com", photo_url="https://img/v.png")


class FrozenNow:
    """Callable now_provider that tests can move forward."""

    def __init__(self, instant: datetime):
        self.instant = instant

    def __call__(self) -> datetime:
        return self.instant

    def set(self, instant: datetime) -> None:
        self.instant = instant


class RecordingStore:
    def __init__(self):
        self.uploads = []

    def upload(self, path, data, content_type=None):
        self.uploads.append((path, data, content_type))
        return f"https://files.example/{path}"


class FailingStore:
    def __init__(self):
        self.calls = 0

    def upload(self, path, data, content_type=None):
        self.calls += 1
        raise RemoteFailure("Upload failed. Please try again.")


@pytest.fixture
def frozen_now():
    # 2025-06-01 09:00 in Tokyo
    return FrozenNow(datetime(2025, 6, 1, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def trip_config():
    return TripConfig(admin_emails=frozenset({"admin@example.com"}))


@pytest.fixture
def app(tmp_path, frozen_now, trip_config):
    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite://",
            "USE_SUPABASE": False,
            "SUPABASE_CLIENT": None,
            "UPLOAD_FOLDER": str(tmp_path / "uploads"),
            "DAYDROP": trip_config,
            CLOCK_KEY: ReferenceClock(
                trip_config.reference_timezone,
                trip_config.unlock_cutoff_hour,
                now_provider=frozen_now,
            ),
        }
    )
    yield app


@pytest.fixture
def app_ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def repository(app_ctx):
    return SqlContentRepository()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def login(client):
    def _login(identity: Identity):
        with client.session_transaction() as sess:
            sess[SESSION_KEY] = identity.to_dict()
        return identity

    return _login


@pytest.fixture
def png_bytes():
    buf = io.BytesIO()
    Image.new("RGB", (4, 4), color=(255, 77, 109)).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def admin_user():
    return ADMIN


@pytest.fixture
def viewer_user():
    return VIEWER
