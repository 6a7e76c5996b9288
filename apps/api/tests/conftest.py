from __future__ import annotations
# ruff: noqa: E402

import os
import sys
import tempfile
import uuid
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import delete
from sqlalchemy.orm import Session, sessionmaker

API_ROOT = Path(__file__).resolve().parents[1]
REPO_ROOT = Path(__file__).resolve().parents[3]
for path in (API_ROOT, REPO_ROOT):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

TEST_ADMIN_KEY = "test-admin-key"
_DEFAULT_DB = Path(tempfile.mkdtemp(prefix="affiliate-tests-")) / "affiliate.db"

# Settings are read at import time, so the environment is fixed before the app loads.
os.environ["DATABASE_URL"] = os.environ.get("TEST_DATABASE_URL", f"sqlite:///{_DEFAULT_DB}")
os.environ["APP_ENV"] = "development"
os.environ["ADMIN_API_KEY"] = TEST_ADMIN_KEY
os.environ["DEV_AUTH_BYPASS"] = "false"
os.environ["STATS_TIMEZONE"] = "UTC"
os.environ["REDIRECT_RATE_LIMIT_PER_MINUTE"] = "0"
os.environ["CONVERSION_RATE_LIMIT_PER_MINUTE"] = "0"

from affiliate_api.db import SessionLocal
from affiliate_api.main import app
from affiliate_api.models import AffiliateClick, AffiliateLink, AffiliatePerformance
from affiliate_api.services.events import get_event_bus
from affiliate_api.services.links import create_link
from packages.events import LiveEventBus


@pytest.fixture(scope="session")
def db_url() -> str:
    return os.environ["DATABASE_URL"]


@pytest.fixture(scope="session")
def migrated_db(db_url: str) -> Generator[None, None, None]:
    config = Config(str(API_ROOT / "alembic.ini"))
    config.attributes["configure_logger"] = False
    config.set_main_option("sqlalchemy.url", db_url)
    command.upgrade(config, "head")
    yield
    command.downgrade(config, "base")


@pytest.fixture()
def session_factory(migrated_db: None) -> sessionmaker[Session]:
    with SessionLocal() as session:
        # Children first; affiliate_links is referenced by both.
        session.execute(delete(AffiliateClick))
        session.execute(delete(AffiliatePerformance))
        session.execute(delete(AffiliateLink))
        session.commit()
    return SessionLocal


@pytest.fixture()
def db_session(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    with session_factory() as session:
        yield session
        session.rollback()


@pytest.fixture()
def admin_headers() -> dict[str, str]:
    return {"X-Admin-Api-Key": TEST_ADMIN_KEY}


@pytest.fixture()
def live_bus() -> Generator[LiveEventBus, None, None]:
    bus = LiveEventBus(queue_size=50)
    app.dependency_overrides[get_event_bus] = lambda: bus
    yield bus
    app.dependency_overrides.pop(get_event_bus, None)


@pytest.fixture()
def make_link(db_session: Session) -> Callable[..., AffiliateLink]:
    def _make(**overrides: Any) -> AffiliateLink:
        fields: dict[str, Any] = {
            "name": "Test Product",
            "short_code": f"code-{uuid.uuid4().hex[:8]}",
            "destination_url": "https://shop.example.com/product",
            "category": "Electronics",
            "platform": "amazon",
        }
        fields.update(overrides)
        return create_link(db_session, **fields)

    return _make
