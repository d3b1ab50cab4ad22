"""
End-to-end tests of run_pipeline on the synthetic experiment.
"""

import json
import warnings

import numpy as np
import pandas as pd
import pytest
import yaml

import countscope
from countscope.config import PipelineConfig, load_pipeline_config
from countscope.core.errors import (
    EmptyAfterFiltering,
    MissingReferenceLevel,
    SampleFileMismatch,
    UnresolvedTranscript,
)
from countscope.pipeline import run_pipeline

from conftest import GENOTYPES, KNOCKDOWN_GENE, STAGES


def experiment_config(experiment, **overrides):
    """Config dict for the synthetic experiment with relative paths."""
    config = {
        "inputs": {
            "tx2gene": "tx2gene.tsv",
            "gene_names": "gene_names.tsv",
            "samples": "samples.tsv",
            "quant_dir": "quant",
        },
        "samples": {
            "id_col": "run",
            "group_col": "sample",
            "provenance_col": "lane",
            "factors": {"genotype": "WT", "cell_cycle": list(STAGES)},
        },
        "normalization": {"method": "log1p"},
        "projection": {"n_top": 40, "heatmap_genes": 20},
        "report": {
            "genes": ["zld"],
            "reference_levels": {"Genotype": "WT", "Cell_Cycle": "cc12"},
        },
        "output": {"directory": "results"},
    }
    for section, values in overrides.items():
        config.setdefault(section, {}).update(values)
    return config


def load(experiment, **overrides):
    path = experiment.root / "pipeline.yaml"
    path.write_text(yaml.safe_dump(experiment_config(experiment, **overrides), sort_keys=False))
    return load_pipeline_config(path)


def run_quietly(config, **kwargs):
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", UnresolvedTranscript)
        return run_pipeline(config, **kwargs)


class TestPipelineArtifacts:
    """Artifacts of a log1p run without figures."""

    @pytest.fixture
    def result(self, experiment):
        return run_quietly(load(experiment), make_figures=False)

    def test_collapse_and_filter(self, experiment, result):
        assert result.raw.n_samples == len(experiment.runs)
        assert list(result.collapsed.sample_ids) == experiment.biological_samples
        assert result.collapsed.data.sum() == pytest.approx(result.raw.data.sum())
        assert result.filtered.n_genes == experiment.n_genes - len(experiment.zero_genes)
        assert not set(experiment.zero_genes) & set(result.filtered.gene_ids)

    def test_factors_releveled(self, result):
        meta = result.transformed.sample_metadata
        assert list(meta["genotype"].cat.categories) == list(GENOTYPES)
        assert list(meta["cell_cycle"].cat.categories) == list(STAGES)

    def test_transformed(self, result):
        np.testing.assert_allclose(result.transformed.data, np.log2(result.normalized.data + 1.0))
        assert result.transformed.sample_ids.equals(result.filtered.sample_ids)

    def test_similarity(self, experiment, result):
        distances = result.distances
        np.testing.assert_allclose(distances.to_numpy(), distances.to_numpy().T)
        assert sorted(result.sample_tree.leaf_labels) == sorted(experiment.biological_samples)
        assert list(result.projection.coordinates.columns) == ["PC1", "PC2"]
        assert result.gene_tree is not None
        assert result.top_genes.n_genes == 20

    def test_report(self, result):
        report = result.report
        assert len(report) == 12
        assert (report["gene_id"] == KNOCKDOWN_GENE).all()
        assert list(report["Genotype"].cat.categories) == ["WT", "KD"]
        assert report["Cell_Cycle"].cat.categories[0] == "cc12"
        by_genotype = report.groupby("Genotype", observed=True)["count"].mean()
        assert by_genotype["KD"] < by_genotype["WT"]

    def test_outputs_written(self, experiment, result):
        out = experiment.root / "results"
        for name in (
            "counts.raw.csv", "counts.normalized.csv", "counts.transformed.csv",
            "size_factors.csv", "sample_distances.csv", "pca.csv", "genes_long.csv",
            "samples.csv", "run_manifest.json",
        ):
            assert (out / name).is_file(), name
        assert not (out / "figures").exists()

        pca = pd.read_csv(out / "pca.csv", index_col=0)
        assert {"PC1", "PC2", "genotype", "cell_cycle"} <= set(pca.columns)
        raw = pd.read_csv(out / "counts.raw.csv", index_col=0)
        assert list(raw.columns) == experiment.biological_samples

    def test_manifest(self, experiment, result):
        manifest = json.loads((experiment.root / "results" / "run_manifest.json").read_text())
        assert manifest["countscope_version"] == countscope.__version__
        assert manifest["config"]["filter"] == {"min_count": 1, "min_samples": 2}
        assert [t["name"] for t in manifest["transforms"]] == [
            "ReplicateCollapser", "LowCountFilter", "VarianceStabilizer",
        ]
        assert manifest["shapes"]["raw"] == {"genes": experiment.n_genes, "samples": 24}
        assert manifest["normalization"]["method"] == "log1p"
        assert manifest["sample_leaf_order"] == result.sample_tree.leaf_labels
        assert set(manifest["percent_variance"]) == {"PC1", "PC2"}
        assert manifest["figures"] == []

    def test_deterministic(self, experiment, result):
        again = run_quietly(load(experiment), make_figures=False)
        assert again.sample_tree.leaf_labels == result.sample_tree.leaf_labels
        np.testing.assert_allclose(again.transformed.data, result.transformed.data)


class TestPipelineFailures:
    """Fatal conditions stop the run at the right stage."""

    def test_missing_reference_before_import(self, experiment):
        """Test a bad reference fails before any quantification file is needed."""
        config = load(experiment, samples={"factors": {"genotype": "ctrl"}}, inputs={"quant_dir": "absent"})
        with pytest.raises(MissingReferenceLevel, match="ctrl"):
            run_quietly(config, make_figures=False)
        assert not (experiment.root / "results" / "counts.raw.csv").exists()

    def test_missing_report_reference_before_normalization(self, experiment):
        """Test a bad report reference level fails before counts are read or written."""
        config = load(experiment, report={"reference_levels": {"Genotype": "ctrl"}})
        with pytest.raises(MissingReferenceLevel, match="ctrl"):
            run_quietly(config, make_figures=False)
        results = experiment.root / "results"
        for name in ("counts.raw.csv", "size_factors.csv", "counts.normalized.csv", "pca.csv"):
            assert not (results / name).exists()

    def test_sample_ids_not_matching_report_fields(self, experiment):
        config = load(experiment, report={"id_fields": ["Genotype", "Cell_Cycle", "Replicate", "Extra"]})
        with pytest.raises(ValueError, match="do not split"):
            run_quietly(config, make_figures=False)
        assert not (experiment.root / "results" / "counts.raw.csv").exists()

    def test_missing_quant_file(self, experiment):
        (experiment.quant_dir / experiment.runs[0] / "quant.sf").unlink()
        with pytest.raises(SampleFileMismatch, match=experiment.runs[0]):
            run_quietly(load(experiment), make_figures=False)

    def test_everything_filtered(self, experiment):
        config = load(experiment, filter={"min_count": 1e9})
        with pytest.raises(EmptyAfterFiltering):
            run_quietly(config, make_figures=False)

    def test_invalid_config(self):
        with pytest.raises(ValueError, match="Missing required inputs"):
            run_pipeline(PipelineConfig(), make_figures=False)


class TestPipelineVst:
    """Default VST run with figures."""

    def test_vst_with_figures(self, experiment):
        config = load(experiment, normalization={"method": "vst"})
        result = run_quietly(config)

        assert result.normalization.method == "vst"
        assert result.normalization.design == "~genotype + cell_cycle + genotype:cell_cycle"
        assert np.all(np.isfinite(result.transformed.data))

        figures = experiment.root / "results" / "figures"
        for key in ("size_factors", "sample_distances", "pca", "top_variable_genes",
                    f"gene_{KNOCKDOWN_GENE}_boxplot", f"gene_{KNOCKDOWN_GENE}_trend"):
            assert (figures / f"{key}.png").is_file(), key
        assert len(result.manifest["figures"]) == 6
