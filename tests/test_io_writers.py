"""
Tests for matrix/table writers, the matrix loader and manifest JSON.
"""

import json

import numpy as np
import pandas as pd
import pytest

from countscope.io import load_count_matrix, write_count_matrix, write_factors, write_sample_table
from countscope.utils import atomic_write_json

from conftest import make_count_matrix


class TestCountMatrixFiles:
    """Writing and reading matrix CSVs."""

    def test_written_layout(self, tmp_path):
        matrix = make_count_matrix([[1, 2], [3, 4]], gene_ids=["FBgn1", "FBgn2"], sample_ids=["WT_cc12_1", "KD_cc12_1"])
        path = write_count_matrix(matrix, tmp_path / "nested" / "counts.csv")
        lines = path.read_text().splitlines()
        assert lines[0] == "gene_id,WT_cc12_1,KD_cc12_1"
        assert lines[1].startswith("FBgn1,1")

    def test_load_written_matrix(self, tmp_path):
        matrix = make_count_matrix([[1.5, 2.0], [0.0, 4.25]], kind="normalized")
        path = write_count_matrix(matrix, tmp_path / "counts.csv")
        loaded = load_count_matrix(path, kind="normalized")
        np.testing.assert_allclose(loaded.data, matrix.data)
        assert list(loaded.gene_ids) == ["G0", "G1"]
        assert list(loaded.sample_ids) == ["S0", "S1"]
        assert loaded.kind == "normalized"

    def test_load_aligns_metadata(self, tmp_path):
        matrix = make_count_matrix([[1, 2]], sample_ids=["a", "b"])
        path = write_count_matrix(matrix, tmp_path / "counts.csv")
        metadata = pd.DataFrame({"genotype": ["KD", "WT"]}, index=["b", "a"])
        loaded = load_count_matrix(path, sample_metadata=metadata)
        assert list(loaded.sample_metadata["genotype"]) == ["WT", "KD"]

    def test_load_non_numeric(self, tmp_path):
        path = tmp_path / "bad.csv"
        path.write_text("gene_id,a\ng1,x\n")
        with pytest.raises(ValueError, match="non-numeric"):
            load_count_matrix(path)

    def test_load_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_count_matrix(tmp_path / "nope.csv")


class TestTables:
    """Sample table and per-sample value files."""

    def test_sample_table(self, tmp_path):
        table = pd.DataFrame({"genotype": ["WT"]}, index=pd.Index(["WT_cc12_1"]))
        path = write_sample_table(table, tmp_path / "samples.csv")
        assert path.read_text().splitlines()[0] == "sample,genotype"

    def test_factors(self, tmp_path):
        path = write_factors(pd.Series({"a": 0.5, "b": 2.0}), tmp_path / "size_factors.csv")
        frame = pd.read_csv(path, index_col=0)
        assert list(frame.columns) == ["size_factor"]
        assert frame.loc["b", "size_factor"] == 2.0


class TestAtomicWriteJson:
    """Manifest writing."""

    def test_numpy_and_paths(self, tmp_path):
        path = tmp_path / "manifest.json"
        atomic_write_json(path, {
            "n": np.int64(3),
            "x": np.float32(0.5),
            "order": np.array([2, 1]),
            "where": tmp_path,
        })
        data = json.loads(path.read_text())
        assert data == {"n": 3, "x": 0.5, "order": [2, 1], "where": str(tmp_path)}
        assert [p.name for p in tmp_path.iterdir()] == ["manifest.json"]

    def test_failure_leaves_no_file(self, tmp_path):
        path = tmp_path / "manifest.json"
        with pytest.raises(TypeError):
            atomic_write_json(path, {"bad": object()})
        assert list(tmp_path.iterdir()) == []
