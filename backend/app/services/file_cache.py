"""JSON documents persisted on local disk.

Used for the station snapshot and the grid index so a restart can skip the
upstream fetch and the index build. Writes go to a temporary file in the
same directory and are moved into place, so readers never observe a
partially written document.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def read_json_document(path: Path) -> Any | None:
    """Load a JSON document, returning None when missing or unreadable."""
    try:
        with open(path, encoding="utf-8") as handle:
            return json.load(handle)
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable cache file %s: %s", path, exc)
        return None


def write_json_document(path: Path, document: Any) -> None:
    """Atomically replace ``path`` with the JSON encoding of ``document``.

    Raises:
        OSError: if the directory cannot be created or the file written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(document, handle, separators=(",", ":"))
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


__all__ = ["read_json_document", "write_json_document"]
