"""Atomic file publishing shared by the history store and the renderer."""

import logging
import os
import tempfile
from pathlib import Path

from benchledger.core.exceptions import WriteFailure

logger = logging.getLogger(__name__)

DEFAULT_MODE = 0o644


def _target_mode(path: Path) -> int:
    """Keep the permissions of the file being replaced."""
    try:
        return path.stat().st_mode & 0o777
    except FileNotFoundError:
        return DEFAULT_MODE


def atomic_write_text(path: Path, content: str, encoding: str = "utf-8") -> Path:
    """
    Replace ``path`` with ``content`` in one indivisible step.

    The content is staged in a temporary file in the same directory,
    flushed to disk, then renamed over the target. Readers see either the
    old complete file or the new complete file.

    Raises:
        WriteFailure: staging or publishing failed; the target is untouched
    """
    path = Path(path)
    tmp_name = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w",
            encoding=encoding,
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as f:
            tmp_name = f.name
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_name, _target_mode(path))
        os.replace(tmp_name, path)
        tmp_name = None
    except OSError as e:
        raise WriteFailure(path, str(e)) from e
    finally:
        if tmp_name is not None:
            try:
                os.unlink(tmp_name)
            except OSError:
                logger.warning(f"[fileio] Could not remove staging file {tmp_name}")

    logger.debug(f"[fileio] Published {path}")
    return path
