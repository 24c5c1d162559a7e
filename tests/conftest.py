"""Shared fixtures."""

from unittest.mock import AsyncMock

import pytest

from prismsync.client.api import ApiResult
from prismsync.models.records import Cloud
from prismsync.store.memory import InventoryStore


@pytest.fixture
def store():
    """Empty in-memory inventory."""
    return InventoryStore()


@pytest.fixture
def cloud():
    """A cloud record as the orchestrator hands it to passes."""
    return Cloud(id=1, name="pe-lab", owner_id=10, account_id=20, region_code="region-a")


@pytest.fixture
def api():
    """API client whose list calls return nothing until a test sets them."""
    client = AsyncMock()
    empty = ApiResult(success=True, items=[])
    for method in (
        "list_hosts",
        "list_networks",
        "list_containers",
        "list_images",
        "list_snapshots",
        "list_virtual_machines",
    ):
        getattr(client, method).return_value = empty
    return client
