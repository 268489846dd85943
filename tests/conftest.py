from __future__ import annotations

from pathlib import Path

import pytest

from classifyx.ml.labels import LabelSet


@pytest.fixture()
def labels() -> LabelSet:
    return LabelSet(("cat", "dog", "bird"))


@pytest.fixture()
def labels_file(tmp_path: Path) -> Path:
    path = tmp_path / "labels.txt"
    path.write_text("cat\ndog\nbird\n", encoding="utf-8")
    return path
