"""Shared pytest fixtures for the webhook ingestion tests."""
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from helpers import FakeGateway, FakeMediaStore  # noqa: E402
from wacrm.api.factory import create_app  # noqa: E402
from wacrm.config import Settings  # noqa: E402
from wacrm.domain.ingestion import WebhookIngestor  # noqa: E402


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def media_store():
    return FakeMediaStore()


@pytest.fixture
def ingestor(gateway, media_store):
    """Pipeline over in-memory collaborators with default settings."""
    return WebhookIngestor(
        instances=gateway,
        gateway=gateway,
        media_store=media_store,
        settings=Settings(),
    )


@pytest.fixture
def client(ingestor):
    """TestClient for an app wired to the in-memory pipeline."""
    app = create_app(ingestor=ingestor)
    return TestClient(app)
