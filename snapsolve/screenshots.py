"""Screenshot queues: the image source the orchestrator reads from.

Two ordered queues of file paths: the main queue (problem screenshots) and
the extra queue (debugging screenshots taken after a solution exists).
"""

from __future__ import annotations

import asyncio
import base64
import logging
from pathlib import Path
from typing import Protocol

from snapsolve.schemas import ImageArtifact

logger = logging.getLogger(__name__)


class ImageSource(Protocol):
    def list_main_queue(self) -> list[str]: ...

    def list_extra_queue(self) -> list[str]: ...

    def clear_extra_queue(self) -> None: ...

    def clear_queues(self) -> None: ...

    async def read_payload(self, reference: str) -> bytes: ...

    async def get_preview(self, reference: str) -> bytes: ...


class ScreenshotStore:
    """File-backed screenshot queues capped at ``max_queue_size`` entries each.

    When a queue is full the oldest screenshot is dropped and its file removed.
    """

    def __init__(self, directory: str | Path = "screenshots", max_queue_size: int = 5) -> None:
        self.directory = Path(directory)
        self.max_queue_size = max_queue_size
        self._main: list[str] = []
        self._extra: list[str] = []

    def list_main_queue(self) -> list[str]:
        return list(self._main)

    def list_extra_queue(self) -> list[str]:
        return list(self._extra)

    def add(self, path: str | Path, extra: bool = False) -> list[str]:
        """Append a screenshot to a queue and return the updated queue."""
        resolved = Path(path)
        if not self._owns(resolved):
            raise ValueError(f"Screenshot must be inside {self.directory}: {resolved}")
        if not resolved.is_file():
            raise FileNotFoundError(f"Screenshot not found: {resolved}")

        queue = self._extra if extra else self._main
        queue.append(str(resolved))
        while len(queue) > self.max_queue_size:
            evicted = queue.pop(0)
            self._remove_file(evicted)
        logger.info(f"Queued screenshot {resolved} ({'extra' if extra else 'main'}, size={len(queue)})")
        return list(queue)

    def clear_extra_queue(self) -> None:
        for path in self._extra:
            self._remove_file(path)
        self._extra = []

    def clear_queues(self) -> None:
        for path in self._main:
            self._remove_file(path)
        self._main = []
        self.clear_extra_queue()

    async def read_payload(self, reference: str) -> bytes:
        return await asyncio.to_thread(Path(reference).read_bytes)

    async def get_preview(self, reference: str) -> bytes:
        # No thumbnailing; the preview is the captured image itself.
        return await self.read_payload(reference)

    def _owns(self, path: Path) -> bool:
        return self.directory.resolve() in path.resolve().parents

    def _remove_file(self, path: str) -> None:
        # Only files inside our own directory are deleted.
        target = Path(path)
        try:
            if self._owns(target):
                target.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove screenshot {path}: {e}")


async def load_artifacts(source: ImageSource, references: list[str]) -> list[ImageArtifact]:
    """Read all screenshots concurrently and encode them for the gateway."""

    async def load(reference: str) -> ImageArtifact:
        payload, preview = await asyncio.gather(
            source.read_payload(reference), source.get_preview(reference)
        )
        return ImageArtifact(
            reference=reference,
            preview=preview,
            data=base64.b64encode(payload).decode("ascii"),
        )

    return list(await asyncio.gather(*(load(ref) for ref in references)))
