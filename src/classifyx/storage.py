"""Temporary on-disk staging for uploaded images.

Each upload is written under a system-generated name; only a validated
extension is taken from the client's filename. Callers should use
:meth:`TempArtifactStore.staged` so the artifact is removed on every exit path.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path, PureWindowsPath
from typing import TYPE_CHECKING

from classifyx.errors import BadInput, StagingError

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Iterator

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS: frozenset[str] = frozenset(
    {".jpg", ".jpeg", ".png", ".bmp", ".gif", ".webp", ".tif", ".tiff"}
)


@dataclass(frozen=True)
class StagedImage:
    """One uploaded image's temporary file, owned by a single request."""

    name: str
    path: Path
    size: int
    created_at: datetime


def safe_extension(filename: str | None) -> str:
    """Return the lowercased extension of an untrusted filename, or ``""``.

    Raises:
        BadInput: If the filename carries an extension outside the allow-list.
    """
    if not filename:
        return ""
    # PureWindowsPath splits on both "/" and "\\"
    suffix = PureWindowsPath(filename).suffix.lower()
    if not suffix:
        return ""
    if suffix not in ALLOWED_EXTENSIONS:
        raise BadInput(f"Unsupported image file extension: {suffix!r}")
    return suffix


class TempArtifactStore:
    """Writes uploads to a temp directory and removes them after use."""

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StagingError(f"Cannot create temp directory {self._directory}: {exc}") from exc
        self._holds: dict[str, asyncio.Future[object]] = {}

    @property
    def directory(self) -> Path:
        return self._directory

    def stage(self, payload: bytes, original_filename: str | None = None) -> StagedImage:
        """Write ``payload`` to a new, uniquely named file.

        Raises:
            BadInput: If the payload is empty or the extension is not allowed.
            StagingError: If the file cannot be written.
        """
        if not payload:
            raise BadInput("Uploaded image is empty")

        name = f"{uuid.uuid4().hex}{safe_extension(original_filename)}"
        path = self._directory / name
        created = False
        try:
            # "x" refuses to overwrite an existing file
            with path.open("xb") as fh:
                created = True
                fh.write(payload)
        except OSError as exc:
            if created:
                path.unlink(missing_ok=True)
            raise StagingError(f"Failed to stage upload: {exc}") from exc

        image = StagedImage(name=name, path=path, size=len(payload), created_at=datetime.now(UTC))
        logger.debug("Staged %d bytes at %s", image.size, image.path)
        return image

    def release(self, image: StagedImage) -> None:
        """Delete a staged file. Failures are logged, never raised."""
        try:
            image.path.unlink(missing_ok=True)
        except OSError:
            logger.warning("Failed to remove staged image %s", image.path, exc_info=True)
        else:
            logger.debug("Released %s", image.path)

    def hold(self, image: StagedImage, until: asyncio.Future[object]) -> None:
        """Keep *image* on disk past its ``staged()`` block until *until* is done."""
        self._holds[image.name] = until

    @contextmanager
    def staged(self, payload: bytes, original_filename: str | None = None) -> Iterator[StagedImage]:
        """Stage ``payload`` for the duration of the ``with`` block.

        If a :meth:`hold` was placed on the image, removal happens when the
        held future completes instead of on block exit.
        """
        image = self.stage(payload, original_filename)
        try:
            yield image
        finally:
            until = self._holds.pop(image.name, None)
            if until is None or until.done():
                self.release(image)
            else:
                logger.debug("Deferring removal of %s until its reader finishes", image.name)
                until.add_done_callback(lambda _: self.release(image))
