"""Tests for the corpus reader."""

import pytest

from blockseq.core.errors import ConfigError
from blockseq.sources.corpus import read_corpus, slice_corpus


class TestReadCorpus:
    def test_drops_header_and_blank_rows(self, tmp_path):
        path = tmp_path / "ids.csv"
        path.write_text("id,title\n101,cat game\n\n102,dog game\n 103 ,\n")
        assert read_corpus(path) == ["101", "102", "103"]

    def test_custom_sentinel(self, tmp_path):
        path = tmp_path / "ids.csv"
        path.write_text("project_id\n1\n2\n")
        assert read_corpus(path, header_sentinel="project_id") == ["1", "2"]

    def test_sentinel_anywhere(self, tmp_path):
        # repeated headers from concatenated exports are dropped too
        path = tmp_path / "ids.csv"
        path.write_text("id\n1\nid\n2\n")
        assert read_corpus(path) == ["1", "2"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            read_corpus(tmp_path / "nope.csv")


class TestSliceCorpus:
    IDS = [str(i) for i in range(10)]

    def test_half_open(self):
        assert slice_corpus(self.IDS, 2, 5) == ["2", "3", "4"]

    def test_clamps_to_bounds(self):
        assert slice_corpus(self.IDS, 8, 1000) == ["8", "9"]
        assert slice_corpus(self.IDS, -3, 2) == ["0", "1"]

    def test_empty(self):
        assert slice_corpus(self.IDS, 10, 20) == []
        assert slice_corpus(self.IDS, 5, 5) == []
