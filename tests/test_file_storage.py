"""
Test file storage locale.
"""
import io
import os

import pytest

from core.file_storage import FileStorage, FileTooLargeError


class TestFileStorage:
    """Test salvataggio e creazione file."""

    def test_save_file_creates_directory(self, tmp_path):
        storage = FileStorage()
        target = tmp_path / "nested" / "dir"

        path = storage.save_file(str(target), "scans.json", io.BytesIO(b"[]"))

        assert os.path.basename(path) == "scans.json"
        assert os.path.dirname(os.path.dirname(path)) == str(target)
        with open(path, "rb") as f:
            assert f.read() == b"[]"

    def test_same_name_uploads_kept_apart(self, tmp_path):
        storage = FileStorage()

        first = storage.save_file(str(tmp_path), "scans.json", io.BytesIO(b"[1]"))
        second = storage.save_file(str(tmp_path), "scans.json", io.BytesIO(b"[2]"))

        assert first != second
        assert os.path.basename(first) == os.path.basename(second) == "scans.json"
        with open(first, "rb") as f:
            assert f.read() == b"[1]"
        with open(second, "rb") as f:
            assert f.read() == b"[2]"

    def test_save_file_too_large_removes_file(self, tmp_path):
        storage = FileStorage()

        with pytest.raises(FileTooLargeError):
            storage.save_file(str(tmp_path), "big.json", io.BytesIO(b"x" * 100), max_bytes=10)

        assert os.listdir(tmp_path) == []

    @pytest.mark.parametrize("name", ["", "..", "dir/", "  "])
    def test_invalid_names(self, tmp_path, name):
        with pytest.raises(ValueError):
            FileStorage().save_file(str(tmp_path), name, io.BytesIO(b""))

    def test_create_file_truncates(self, tmp_path):
        storage = FileStorage()
        existing = tmp_path / "report_1.json"
        existing.write_text("[\n  {")

        path = storage.create_file(str(tmp_path), "report_1.json")

        assert os.path.getsize(path) == 0
