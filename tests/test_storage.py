import json

import pytest

from goyna.storage import LocalStorage, StorageError


class TestLocalStorage:
    def test_set_get_remove(self, storage):
        storage.set("a", "1")
        assert storage.get("a") == "1"

        storage.remove("a")
        assert storage.get("a") is None

    def test_remove_missing_key(self, storage):
        storage.remove("missing")
        assert storage.keys() == []

    def test_values_persist_to_disk(self, tmp_path):
        path = tmp_path / "nested" / "store.json"
        LocalStorage(path).set("invoices", "[]")

        assert json.loads(path.read_text(encoding="utf-8")) == {"invoices": "[]"}
        assert LocalStorage(path).get("invoices") == "[]"

    @pytest.mark.parametrize("content", ["{broken", "[1, 2, 3]", ""])
    def test_corrupt_file_reads_as_empty(self, tmp_path, content):
        path = tmp_path / "store.json"
        path.write_text(content, encoding="utf-8")

        assert LocalStorage(path).keys() == []

    def test_write_failure_raises_and_keeps_memory_state(self, tmp_path):
        """
        Given: A storage path whose parent is a regular file
        When: A value is written
        Then: StorageError is raised and nothing changes in memory
        """
        blocker = tmp_path / "blocker"
        blocker.write_text("x", encoding="utf-8")
        storage = LocalStorage(blocker / "store.json")

        with pytest.raises(StorageError):
            storage.set("k", "v")
        assert storage.get("k") is None
