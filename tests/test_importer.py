"""
Integration tests for abundance import.

Uses the synthetic experiment from conftest: real files, no mocking.
"""

import shutil
import warnings

import numpy as np
import pandas as pd
import pytest

from countscope.core.errors import SampleFileMismatch, UnresolvedTranscript
from countscope.io import (
    aggregate_to_genes,
    import_abundances,
    load_sample_table,
    load_transcript_gene_map,
    locate_quant_files,
    read_quant_file,
)
from countscope.io.formats import resolve_format

from conftest import SPIKE_IN, gene_id


@pytest.fixture
def sheet(experiment):
    return load_sample_table(experiment.samples, id_col="run")


@pytest.fixture
def tx2gene(experiment):
    return load_transcript_gene_map(experiment.tx2gene)


class TestLocateQuantFiles:
    """Sample <-> file pairing."""

    def test_files_in_sample_order(self, experiment, sheet):
        """Test one file per sample, keyed and ordered like the sheet."""
        files = locate_quant_files(sheet, experiment.quant_dir)
        assert list(files) == list(sheet.index)
        for sample_id, path in files.items():
            assert path.parent.name == sample_id
            assert path.name == "quant.sf"

    def test_missing_file(self, experiment, sheet):
        """Test a missing file raises SampleFileMismatch naming the sample."""
        missing_run = experiment.runs[3]
        shutil.rmtree(experiment.quant_dir / missing_run)
        with pytest.raises(SampleFileMismatch, match=missing_run):
            locate_quant_files(sheet, experiment.quant_dir)

    def test_missing_directory(self, experiment, sheet, tmp_path):
        """Test a missing quantification directory raises SampleFileMismatch."""
        with pytest.raises(SampleFileMismatch, match="not found"):
            locate_quant_files(sheet, tmp_path / "nowhere")

    def test_directory_column(self, experiment, sheet):
        """Test subdirectories can come from a sample sheet column."""
        renamed = sheet.rename(index=lambda s: f"id_{s}").assign(folder=list(sheet.index))
        files = locate_quant_files(renamed, experiment.quant_dir, dir_col="folder")
        assert files["id_" + experiment.runs[0]].parent.name == experiment.runs[0]

    def test_shared_files_rejected(self, experiment, sheet):
        """Test two samples pointing at one file raise SampleFileMismatch."""
        shared = sheet.assign(folder=experiment.runs[0])
        with pytest.raises(SampleFileMismatch, match="share"):
            locate_quant_files(shared, experiment.quant_dir, dir_col="folder")


class TestReadQuantFile:
    """Single-file parsing."""

    def test_salmon_file(self, experiment):
        """Test a salmon file reads into transcript -> NumReads."""
        run = experiment.runs[0]
        counts = read_quant_file(experiment.quant_dir / run / "quant.sf", "salmon")
        expected = experiment.transcript_counts[run]
        assert counts[SPIKE_IN] == expected[SPIKE_IN]
        assert counts.sum() == pytest.approx(expected.sum())

    def test_wrong_format(self, experiment):
        """Test a file without the format's columns raises SampleFileMismatch."""
        run = experiment.runs[0]
        with pytest.raises(SampleFileMismatch, match="target_id"):
            read_quant_file(experiment.quant_dir / run / "quant.sf", "kallisto")

    def test_version_suffix_stripped(self, tmp_path):
        """Test an id_pattern folds versioned IDs onto one transcript."""
        path = tmp_path / "abundance.tsv"
        pd.DataFrame({
            "target_id": ["FBtr1.1", "FBtr1.2", "FBtr2.1"],
            "est_counts": [3.0, 2.0, 7.0],
        }).to_csv(path, sep="\t", index=False)

        fmt = resolve_format("kallisto", id_pattern=r"^(?P<id>[^.]+)")
        counts = read_quant_file(path, fmt)
        assert counts.to_dict() == {"FBtr1": 5.0, "FBtr2": 7.0}

    def test_negative_counts(self, tmp_path):
        """Test negative estimates are rejected."""
        path = tmp_path / "quant.sf"
        pd.DataFrame({"Name": ["FBtr1"], "NumReads": [-1.0]}).to_csv(path, sep="\t", index=False)
        with pytest.raises(ValueError, match="Negative"):
            read_quant_file(path, "salmon")


class TestAggregateToGenes:
    """Transcript -> gene summation."""

    def test_unresolved_contribute_nothing(self):
        """Test transcripts without a gene are returned separately and not summed."""
        transcripts = pd.Series({"t1": 10.0, "t2": 5.0, "spike": 100.0})
        tx2gene = pd.Series({"t1": "g1", "t2": "g1"})
        genes, unresolved = aggregate_to_genes(transcripts, tx2gene)
        assert genes.to_dict() == {"g1": 15.0}
        assert list(unresolved) == ["spike"]


class TestImportAbundances:
    """Full import."""

    def test_columns_follow_sample_table(self, experiment, sheet, tx2gene):
        """Test matrix columns equal the sheet order, not directory order."""
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", UnresolvedTranscript)
            counts = import_abundances(sheet, experiment.quant_dir, tx2gene)
        assert list(counts.sample_ids) == list(sheet.index)
        assert counts.sample_metadata.index.equals(counts.sample_ids)
        assert list(counts.sample_metadata["genotype"]) == list(sheet["genotype"])

    def test_unresolved_transcript_warns_and_contributes_zero(self, experiment, sheet, tx2gene):
        """Test the unmapped spike-in warns, is dropped, and the import succeeds."""
        with pytest.warns(UnresolvedTranscript, match=SPIKE_IN):
            counts = import_abundances(sheet, experiment.quant_dir, tx2gene)

        assert SPIKE_IN not in counts.gene_ids
        for j, run in enumerate(counts.sample_ids):
            expected = experiment.transcript_counts[run].drop(SPIKE_IN).sum()
            assert counts.data[:, j].sum() == pytest.approx(expected)

    def test_gene_totals(self, experiment, sheet, tx2gene):
        """Test each gene is the sum of its transcripts."""
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", UnresolvedTranscript)
            counts = import_abundances(sheet, experiment.quant_dir, tx2gene)

        run = experiment.runs[5]
        reads = experiment.transcript_counts[run]
        expected = reads["FBtr000010"] + reads["FBtr000011"]
        j = list(counts.sample_ids).index(run)
        i = list(counts.gene_ids).index(gene_id(1))
        assert counts.data[i, j] == pytest.approx(expected)

    def test_rows_sorted_and_raw(self, experiment, sheet, tx2gene):
        """Test gene rows are sorted IDs and the matrix is raw."""
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", UnresolvedTranscript)
            counts = import_abundances(sheet, experiment.quant_dir, tx2gene)
        assert list(counts.gene_ids) == sorted(counts.gene_ids)
        assert counts.n_genes == experiment.n_genes
        assert counts.kind == "raw"
        assert counts.gene_ids.name == "gene_id"

    def test_genes_missing_from_a_file_are_zero(self, experiment, sheet, tx2gene):
        """Test a gene absent from one sample's file is 0 there."""
        run = experiment.runs[0]
        path = experiment.quant_dir / run / "quant.sf"
        quant = pd.read_csv(path, sep="\t")
        quant = quant[~quant["Name"].isin(["FBtr000020", "FBtr000021"])]
        quant.to_csv(path, sep="\t", index=False)

        with warnings.catch_warnings():
            warnings.simplefilter("ignore", UnresolvedTranscript)
            counts = import_abundances(sheet, experiment.quant_dir, tx2gene)

        i = list(counts.gene_ids).index(gene_id(2))
        assert counts.data[i, 0] == 0
        assert np.all(np.isfinite(counts.data))
