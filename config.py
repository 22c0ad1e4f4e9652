import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class Settings(BaseModel):
    """
    Runtime configuration for the merge service.

    Every field can be overridden independently through a ``ZIPMERGE_*``
    environment variable; see ``Settings.from_env``.

    Attributes:
        port: Port uvicorn listens on when main.py is run directly
        max_upload_bytes: Maximum size of a single uploaded archive
        batch_size: Number of archives processed concurrently per window
        max_cell_length: Longest string a cell may hold in the artifact
        work_dir: Shared working directory for uploads, extractions and artifacts
    """
    model_config = ConfigDict(frozen=True)

    port: int = 5000
    max_upload_bytes: int = Field(default=200 * 1024 * 1024, gt=0)
    batch_size: int = Field(default=5, gt=0)
    max_cell_length: int = Field(default=32767, gt=0)
    work_dir: Path = Path("uploads")

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Build settings from ``ZIPMERGE_*`` environment variables.

        Unset or blank variables fall back to the field defaults.
        """
        env = {
            "port": "ZIPMERGE_PORT",
            "max_upload_bytes": "ZIPMERGE_MAX_UPLOAD_BYTES",
            "batch_size": "ZIPMERGE_BATCH_SIZE",
            "max_cell_length": "ZIPMERGE_MAX_CELL_LENGTH",
            "work_dir": "ZIPMERGE_WORK_DIR",
        }
        values = {}
        for field, var in env.items():
            raw = os.environ.get(var)
            if raw and raw.strip():
                values[field] = raw.strip()
        return cls(**values)

    def ensure_work_dir(self) -> Path:
        self.work_dir.mkdir(parents=True, exist_ok=True)
        return self.work_dir
