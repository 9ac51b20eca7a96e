"""
Filesystem-backed artifact store for step screenshots.
"""

import asyncio
import time
from pathlib import Path
from typing import Optional
from uuid import uuid4

from stepwright.config.settings import get_settings
from stepwright.core.interfaces import ArtifactStore
from stepwright.monitoring.logger import get_logger

logger = get_logger(__name__)


def artifact_name(execution_id: str, step_number: int) -> str:
    return f"{execution_id}_step_{step_number}"


class LocalArtifactStore(ArtifactStore):
    """Writes PNG bytes to a directory and hands back URL-like references."""

    def __init__(
        self,
        directory: Optional[Path] = None,
        url_prefix: Optional[str] = None,
    ) -> None:
        settings = get_settings()
        self.directory = Path(directory or settings.screenshots_dir)
        self.url_prefix = settings.artifact_url_prefix if url_prefix is None else url_prefix.rstrip("/")
        self.directory.mkdir(parents=True, exist_ok=True)

    async def save(self, data: bytes, name: Optional[str] = None) -> str:
        filename = f"{name or uuid4().hex}.png"
        path = self.directory / filename
        await asyncio.to_thread(path.write_bytes, data)
        reference = f"{self.url_prefix}/{filename}?t={int(time.time() * 1000)}"
        logger.debug("Artifact saved", extra={"path": str(path), "size": len(data)})
        return reference

    def path_for(self, reference: str) -> Path:
        """Map a reference returned by save() back to its file."""
        filename = reference.split("?", 1)[0].rsplit("/", 1)[-1]
        return self.directory / filename
