"""Tests for the label table."""

from __future__ import annotations

import dataclasses
from pathlib import Path

import pytest

from classifyx.errors import ConfigurationError
from classifyx.ml.labels import LabelSet, load_labels


class TestLoadLabels:
    def test_preserves_line_order(self, labels_file: Path) -> None:
        label_set = load_labels(labels_file)
        assert list(label_set) == ["cat", "dog", "bird"]
        assert len(label_set) == 3

    def test_handles_crlf(self, tmp_path: Path) -> None:
        path = tmp_path / "labels.txt"
        path.write_bytes(b"daisy\r\ntulip\r\n")
        assert list(load_labels(path)) == ["daisy", "tulip"]

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="Cannot read labels file"):
            load_labels(tmp_path / "missing.txt")

    def test_empty_file_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "labels.txt"
        path.write_text("\n\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="empty"):
            load_labels(path)


class TestLabelSet:
    def test_get_by_index(self, labels: LabelSet) -> None:
        assert labels.get(0) == "cat"
        assert labels.get(2) == "bird"

    def test_get_out_of_range(self, labels: LabelSet) -> None:
        with pytest.raises(IndexError):
            labels.get(3)
        with pytest.raises(IndexError):
            labels.get(-1)

    def test_is_immutable(self, labels: LabelSet) -> None:
        with pytest.raises(dataclasses.FrozenInstanceError):
            labels.labels = ("other",)  # type: ignore[misc]
