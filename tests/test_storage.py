"""
Tests for the key-value storage port.

## Test Perspectives Table

| Case ID | Input / Precondition | Perspective (Equivalence / Boundary) | Expected Result | Notes |
|---------|---------------------|---------------------------------------|-----------------|-------|
| TC-ST-N-01 | set then get | Equivalence – normal | Value returned | |
| TC-ST-B-01 | get missing key | Boundary – missing | None | |
| TC-ST-N-02 | remove | Equivalence – normal | has() False | |
| TC-ST-B-02 | remove missing key | Boundary – missing | No error | |
| TC-ST-N-03 | keys(prefix) | Equivalence – normal | Filtered keys | |
| TC-ST-N-04 | Protocol check | Equivalence – normal | MemoryStorage is a StoragePort | |
"""

import pytest

pytestmark = pytest.mark.unit

from crawlkit.storage import MemoryStorage, StoragePort


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


class TestMemoryStorage:
    async def test_set_get(self, storage):
        """Stored values are returned (TC-ST-N-01)."""
        await storage.set("a", "1")
        await storage.set("a", "2")

        assert await storage.get("a") == "2"
        assert len(storage) == 1

    async def test_get_missing(self, storage):
        """Missing keys read as None (TC-ST-B-01)."""
        assert await storage.get("nope") is None

    async def test_remove(self, storage):
        """Removed keys are gone (TC-ST-N-02)."""
        await storage.set("a", "1")
        await storage.remove("a")

        assert await storage.has("a") is False

    async def test_remove_missing(self, storage):
        """Removing a missing key is a no-op (TC-ST-B-02)."""
        await storage.remove("nope")
        assert len(storage) == 0

    async def test_keys_prefix(self, storage):
        """keys() filters by prefix (TC-ST-N-03)."""
        for key in ("cookies:a", "cookies:b", "state:a"):
            await storage.set(key, "x")

        assert sorted(await storage.keys("cookies:")) == ["cookies:a", "cookies:b"]
        assert len(await storage.keys()) == 3

    def test_protocol(self, storage):
        """MemoryStorage satisfies StoragePort (TC-ST-N-04)."""
        assert isinstance(storage, StoragePort)
