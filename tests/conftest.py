"""Shared pytest fixtures for sitelink-sync tests."""

import pytest
from fakes import (
    FakeFamily,
    FakeRepository,
    FakeSiteClient,
    RecordingMessenger,
    make_settings,
)

from sitelink_sync.sync.state import WatermarkStore


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a live MediaWiki instance",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring a live MediaWiki instance"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


@pytest.fixture
def repository():
    """Empty fake Wikibase repository."""
    return FakeRepository()


@pytest.fixture
def enwiki():
    """Fake client site without events."""
    return FakeSiteClient("enwiki")


@pytest.fixture
def family(repository, enwiki):
    return FakeFamily(repository, enwiki)


@pytest.fixture
def messenger():
    return RecordingMessenger()


@pytest.fixture
def store(tmp_path):
    """Watermark store in a temp directory."""
    return WatermarkStore(tmp_path / "state")


@pytest.fixture
def settings():
    return make_settings()
