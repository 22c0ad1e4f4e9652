import logging
import re
import shutil
import time
import uuid
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)

EXTRACTED_PREFIX = "extracted-"
MERGED_PREFIX = "merged-"
STALE_PREFIXES = (EXTRACTED_PREFIX, MERGED_PREFIX)

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


def unique_name(prefix: str, suffix: str = "") -> str:
    """
    Build a name that cannot collide with a concurrent task's name.

    The nanosecond timestamp orders names by creation; the random part
    separates tasks created within the same tick.
    """
    return f"{prefix}{time.time_ns()}-{uuid.uuid4().hex[:8]}{suffix}"


def upload_storage_name(original_name: str) -> str:
    """Storage file name for an upload: ``<time_ns>-<name with unsafe chars replaced>``."""
    safe_name = _UNSAFE_NAME_CHARS.sub("_", original_name or "") or "upload"
    return f"{time.time_ns()}-{safe_name}"


def remove_path(path: Union[str, Path]) -> None:
    """Remove a file or a directory tree. A missing path is not an error."""
    path = Path(path)
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path, ignore_errors=True)
    else:
        path.unlink(missing_ok=True)


class WorkspaceJanitor:
    """
    Housekeeping for the shared working directory.

    Extraction directories and merged artifacts carry a recognizable name
    prefix; anything else in the directory (in-flight uploads) is left alone.
    """

    def __init__(self, work_dir: Path):
        self.work_dir = Path(work_dir)

    def sweep_stale(self) -> int:
        """
        Remove every extracted directory and merged artifact left by earlier runs.

        Returns:
            int: Number of entries removed
        """
        if not self.work_dir.exists():
            return 0

        removed = 0
        for child in self.work_dir.iterdir():
            if not child.name.startswith(STALE_PREFIXES):
                continue
            remove_path(child)
            removed += 1

        if removed:
            logger.info(f"Removed {removed} stale entries", extra={"work_dir": str(self.work_dir)})
        return removed

    def delete_artifact(self, path: Union[str, Path]) -> None:
        remove_path(path)
        logger.info("Deleted delivered artifact", extra={"artifact_path": str(path)})
