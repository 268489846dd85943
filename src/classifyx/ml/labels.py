"""Label table: the ordered labels matching the model's output vector."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from classifyx.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LabelSet:
    """Immutable labels; index ``i`` names component ``i`` of a probability vector."""

    labels: tuple[str, ...]

    def get(self, index: int) -> str:
        if not 0 <= index < len(self.labels):
            raise IndexError(f"Label index {index} out of range for {len(self.labels)} labels")
        return self.labels[index]

    def __len__(self) -> int:
        return len(self.labels)

    def __iter__(self) -> Iterator[str]:
        return iter(self.labels)


def load_labels(path: str | Path) -> LabelSet:
    """Read a newline-delimited label file.

    Raises:
        ConfigurationError: If the file cannot be read or contains no labels.
    """
    label_path = Path(path)
    try:
        text = label_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigurationError(f"Cannot read labels file {label_path}: {exc}") from exc

    labels = tuple(text.splitlines())
    if not any(label.strip() for label in labels):
        raise ConfigurationError(f"Labels file {label_path} is empty")

    logger.info("Loaded %d labels from %s", len(labels), label_path)
    return LabelSet(labels)
