"""Advisory lock serializing cleanup passes across processes.

Two ``gtwatch doctor --fix`` invocations racing each other could both act
on the same candidates. The lock is taken non-blocking: the second pass is
refused immediately instead of waiting behind the first.
"""

from __future__ import annotations

import fcntl
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from gtwatch.exceptions import RemediationError, RemediationLockedError

LOCK_RELATIVE_PATH = Path(".runtime") / "doctor-fix.lock"


def lock_path(town_root: Path | str) -> Path:
    return Path(town_root) / LOCK_RELATIVE_PATH


@contextmanager
def remediation_lock(town_root: Path | str) -> Iterator[Path]:
    path = lock_path(town_root)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = open(path, "a+")
    except OSError as e:
        raise RemediationError(f"cannot open remediation lock {path}: {e}") from e
    try:
        try:
            fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as e:
            raise RemediationLockedError(
                f"another cleanup pass holds {path}"
            ) from e
        fh.seek(0)
        fh.truncate()
        fh.write(f"{os.getpid()}\n")
        fh.flush()
        try:
            yield path
        finally:
            fcntl.flock(fh.fileno(), fcntl.LOCK_UN)
    finally:
        fh.close()
