"""Common test fixtures for the Groundwave Zettelkasten cache."""

import pytest

from groundwave_zk.config import ZKConfig
from groundwave_zk.observability import metrics
from groundwave_zk.services.cache_coordinator import ZKCacheCoordinator
from groundwave_zk.services.note_service import NoteService
from groundwave_zk.storage.webdav_client import WebDAVClient
from tests.fakes import (
    BASE_URL,
    ID_A,
    ID_B,
    ID_INDEX,
    FakeWebDAVServer,
    org_note,
)


@pytest.fixture(autouse=True)
def _reset_metrics():
    """Start every test with empty metrics."""
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def fake_dav():
    """An empty fake WebDAV origin."""
    return FakeWebDAVServer()


@pytest.fixture
def seeded_dav(fake_dav):
    """Origin with an index note, a.org linking to b.org, and b.org."""
    fake_dav.files["index.org"] = org_note(ID_INDEX, title="Index")
    fake_dav.files["a.org"] = org_note(ID_A, title="Note A", links=[ID_B])
    fake_dav.files["b.org"] = org_note(ID_B, title="Note B")
    return fake_dav


@pytest.fixture
def zk_config():
    """Test configuration, independent of the process environment."""
    return ZKConfig(
        zk_path=f"{BASE_URL}index.org",
        home_path=None,
        webdav_username="alice",
        webdav_password="secret",
        request_timeout=2.0,
        startup_delay=0.0,
        refresh_interval=60.0,
        refresh_deadline=30.0,
        site_base_url=None,
    )


@pytest.fixture
def location(zk_config):
    return zk_config.get_zk_location()


@pytest.fixture
def client(zk_config, fake_dav):
    """WebDAV client wired to the fake origin."""
    return WebDAVClient.from_config(zk_config, transport=fake_dav.transport)


@pytest.fixture
def coordinator(zk_config, client):
    """An isolated cache coordinator."""
    coord = ZKCacheCoordinator(zk_config, client=client)
    yield coord
    coord.stop(timeout=5)


@pytest.fixture
def note_service(coordinator):
    return NoteService(coordinator)
