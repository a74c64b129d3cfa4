import hashlib
from pathlib import Path

import pytest

from backup.exceptions import ErrorKind, UploadError
from hashing.hasher import Hasher, compute_checksum


def test_md5_matches_hashlib(tmp_path: Path) -> None:
    path = tmp_path / "small.backup"
    content = b"hash me" * 5000
    path.write_bytes(content)

    hasher = Hasher(buffer_size=64)

    assert hasher.compute(path) == hashlib.md5(content).hexdigest()
    assert hasher.compute(path, "sha256") == hashlib.sha256(content).hexdigest()


def test_unknown_algorithm_rejected(tmp_path: Path) -> None:
    path = tmp_path / "small.backup"
    path.write_bytes(b"x")

    with pytest.raises(ValueError):
        Hasher().compute(path, "crc32")


def test_checksum_of_missing_file_is_unreadable(tmp_path: Path) -> None:
    with pytest.raises(UploadError) as excinfo:
        compute_checksum(tmp_path / "gone.backup")

    assert excinfo.value.kind == ErrorKind.UNREADABLE_FILE
    assert "Failed to compute MD5" in str(excinfo.value)
