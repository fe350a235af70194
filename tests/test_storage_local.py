"""Tests for mail2storage.storage.local."""

from __future__ import annotations

from pathlib import Path

import pytest

from mail2storage.config import StorageKind
from mail2storage.errors import PermanentStorageError
from mail2storage.storage.local import LocalStorage
from mail2storage.storage.target import StorageTarget


@pytest.fixture
def storage(tmp_path: Path) -> LocalStorage:
    return LocalStorage(StorageTarget(StorageKind.LOCAL, str(tmp_path / "root")))


class TestLocalStorage:
    @pytest.mark.asyncio
    async def test_put_creates_directories(self, storage: LocalStorage, tmp_path: Path):
        await storage.start()
        await storage.put("alice/2025/invoice.pdf", b"%PDF")
        assert (tmp_path / "root" / "alice" / "2025" / "invoice.pdf").read_bytes() == b"%PDF"

    @pytest.mark.asyncio
    async def test_put_overwrites(self, storage: LocalStorage, tmp_path: Path):
        await storage.put("a.pdf", b"old")
        await storage.put("a.pdf", b"new")
        assert (tmp_path / "root" / "a.pdf").read_bytes() == b"new"

    @pytest.mark.asyncio
    async def test_no_temporary_files_left(self, storage: LocalStorage, tmp_path: Path):
        await storage.put("alice/a.pdf", b"data")
        assert [p.name for p in (tmp_path / "root" / "alice").iterdir()] == ["a.pdf"]

    @pytest.mark.asyncio
    async def test_prefix(self, tmp_path: Path):
        storage = LocalStorage(StorageTarget(StorageKind.LOCAL, str(tmp_path), "in"))
        await storage.put("x.pdf", b"data")
        assert (tmp_path / "in" / "x.pdf").exists()

    @pytest.mark.asyncio
    async def test_parent_traversal_rejected(self, storage: LocalStorage):
        with pytest.raises(PermanentStorageError, match="invalid storage path"):
            await storage.put("../escape.pdf", b"data")

    @pytest.mark.asyncio
    async def test_file_in_the_way_is_permanent(self, storage: LocalStorage, tmp_path: Path):
        (tmp_path / "root").mkdir()
        (tmp_path / "root" / "alice").write_bytes(b"not a directory")
        with pytest.raises(PermanentStorageError):
            await storage.put("alice/a.pdf", b"data")

    def test_describe(self, storage: LocalStorage, tmp_path: Path):
        assert storage.describe("a.pdf") == f"local://{tmp_path / 'root'}/a.pdf"
