import os
from pathlib import Path

import pytest

from utils.instance_guard import InstanceLock, InstanceLockError, acquire_instance_lock

pytestmark = pytest.mark.skipif(os.name == "nt", reason="flock semantics differ on Windows")


def test_second_lock_is_refused_until_release(tmp_path: Path) -> None:
    lock_path = tmp_path / "data" / "upload.lock"
    first = acquire_instance_lock(lock_path)

    with pytest.raises(InstanceLockError) as excinfo:
        acquire_instance_lock(lock_path)

    assert f"pid={os.getpid()}" in excinfo.value.owner
    first.release()
    second = acquire_instance_lock(lock_path)
    assert second.held is True
    second.release()
    assert second.held is False


def test_lock_as_context_manager(tmp_path: Path) -> None:
    lock_path = tmp_path / "upload.lock"

    with InstanceLock(lock_path) as lock:
        assert lock.held is True
        with pytest.raises(InstanceLockError):
            InstanceLock(lock_path).acquire()

    with InstanceLock(lock_path):
        pass
