"""Small file helpers shared by the stores."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path


def write_text_atomic(file_path: Path, content: str) -> None:
    """Write via temp file + rename so readers never see a partial file.

    The temp file lives in the target's directory so the rename stays on
    one filesystem.
    """
    fd, tmp_name = tempfile.mkstemp(
        dir=str(file_path.parent),
        prefix=f".{file_path.name}.",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, file_path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise
