"""File I/O for Meter's data root: YAML config files and atomic replacement.

Invoices and config.yaml are written through `atomic_replace`, so a reader
never sees a half-written file even while another meter process (the TUI,
a `meter watch` loop) writes the same path.
"""

from __future__ import annotations

import fcntl
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Any, Iterator

import yaml


def read_text(path: Path) -> str:
    """Read a text file, returning empty string if missing."""
    if not path.exists():
        return ""
    return path.read_text(encoding="utf-8")


def read_yaml(path: Path) -> dict[str, Any]:
    """Read a YAML mapping; a missing, empty or non-mapping file reads as {}.

    Malformed YAML raises yaml.YAMLError.
    """
    data = yaml.safe_load(read_text(path) or "{}")
    return data if isinstance(data, dict) else {}


def dump_yaml(data: dict[str, Any]) -> str:
    return yaml.safe_dump(data, default_flow_style=False, allow_unicode=True, sort_keys=False)


@contextmanager
def atomic_replace(path: Path) -> Iterator[IO[bytes]]:
    """Yield a locked temp file beside `path`; it replaces `path` on clean exit."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".part")
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX)
            try:
                yield f
                f.flush()
                os.fsync(f.fileno())
            finally:
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        temp_path.replace(path)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise


def write_bytes_atomic(path: Path, content: bytes) -> None:
    with atomic_replace(path) as f:
        f.write(content)


def write_text_atomic(path: Path, content: str) -> None:
    write_bytes_atomic(path, content.encode("utf-8"))


def write_yaml_atomic(path: Path, data: dict[str, Any]) -> None:
    write_bytes_atomic(path, dump_yaml(data).encode("utf-8"))
