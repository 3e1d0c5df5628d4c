"""
Tests for storage backends.
"""

import asyncio
import json

from agentic_copilot.storage import InMemoryStorage, JsonFileStorage


class TestInMemoryStorage:
    """Tests for the in-memory backend."""

    def test_get_missing_key(self):
        assert asyncio.run(InMemoryStorage().get("nope")) is None

    def test_values_are_copied(self):
        """Mutating a stored or returned value does not leak into storage."""
        storage = InMemoryStorage()
        value = {"items": [1, 2]}

        asyncio.run(storage.set("k", value))
        value["items"].append(3)
        fetched = asyncio.run(storage.get("k"))
        fetched["items"].append(4)

        assert asyncio.run(storage.get("k")) == {"items": [1, 2]}
        assert storage.keys() == ["k"]


class TestJsonFileStorage:
    """Tests for the JSON document backend."""

    def test_set_and_get(self, tmp_path):
        storage = JsonFileStorage(tmp_path / "data" / "store.json")

        asyncio.run(storage.set("a", {"x": 1}))
        asyncio.run(storage.set("b", [1, 2, 3]))

        assert asyncio.run(storage.get("a")) == {"x": 1}
        assert asyncio.run(storage.get("b")) == [1, 2, 3]
        on_disk = json.loads((tmp_path / "data" / "store.json").read_text())
        assert set(on_disk) == {"a", "b"}

    def test_no_temp_file_left_behind(self, tmp_path):
        storage = JsonFileStorage(tmp_path / "store.json")

        asyncio.run(storage.set("a", 1))

        assert [p.name for p in tmp_path.iterdir()] == ["store.json"]

    def test_missing_file(self, tmp_path):
        storage = JsonFileStorage(tmp_path / "absent.json")

        assert asyncio.run(storage.get("a")) is None

    def test_corrupt_file_is_ignored(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("{not json")
        storage = JsonFileStorage(path)

        assert asyncio.run(storage.get("a")) is None

        asyncio.run(storage.set("a", 1))
        assert asyncio.run(storage.get("a")) == 1
