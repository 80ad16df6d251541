# HEARTH v1.0 - Atomic writes and inter-process file locks
import fcntl
import os
import stat
import tempfile
from contextlib import contextmanager
from pathlib import Path

from utils.errors import StorageError

OWNER_ONLY = stat.S_IRUSR | stat.S_IWUSR


def atomic_write(path, data, mode=0o644):
    '''Write data to path so readers see either the old or the new file.

    The temp file lives in the target directory so os.replace stays on one
    filesystem. Parent directories are created as needed.
    '''
    path = Path(path)
    if isinstance(data, str):
        data = data.encode('utf-8')

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix='.tmp', dir=path.parent)
    except OSError as e:
        raise StorageError("create temp file for", path, e) from e

    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except OSError as e:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise StorageError("write", path, e) from e


@contextmanager
def file_lock(path):
    '''Hold an exclusive advisory lock on <path>.lock for the block'''
    lock_path = Path(f"{path}.lock")
    try:
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(lock_path, os.O_RDWR | os.O_CREAT, OWNER_ONLY)
    except OSError as e:
        raise StorageError("open lock", lock_path, e) from e

    try:
        fcntl.flock(fd, fcntl.LOCK_EX)
        yield
    finally:
        fcntl.flock(fd, fcntl.LOCK_UN)
        os.close(fd)
