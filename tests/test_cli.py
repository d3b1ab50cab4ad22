"""
Tests for the countscope command line.
"""

import warnings

import pandas as pd
import pytest
import yaml

from countscope.cli import main
from countscope.core.errors import UnresolvedTranscript

from conftest import KNOCKDOWN_GENE


def write_config(experiment, **report):
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
            "factors": {"genotype": "WT", "cell_cycle": "cc12"},
        },
        "projection": {"n_top": 40, "heatmap_genes": 10},
        "report": report,
        "output": {"directory": "results"},
    }
    path = experiment.root / "pipeline.yaml"
    path.write_text(yaml.safe_dump(config, sort_keys=False))
    return path


def run_cli(argv):
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", UnresolvedTranscript)
        return main(argv)


class TestMain:
    """Dispatcher."""

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "countscope" in capsys.readouterr().out

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["--version"])
        assert exc.value.code == 0
        assert "countscope" in capsys.readouterr().out

    def test_invalid_flag_value(self, tmp_path):
        with pytest.raises(SystemExit):
            main(["run", "--config", str(tmp_path / "c.yaml"), "--min-samples", "0"])


class TestRunCommand:
    """countscope run."""

    def test_run(self, experiment, capsys):
        path = write_config(experiment)
        code = run_cli(["run", "--config", str(path), "--method", "log1p", "--no-figures"])
        assert code == 0
        out = capsys.readouterr().out
        summary = {
            line.split(":", 1)[0].strip(): line.split(":", 1)[1].strip()
            for line in out.splitlines() if line.startswith("  ") and ":" in line
        }
        assert summary["Runs imported"] == "24"
        assert summary["Samples"] == "12"
        assert (experiment.root / "results" / "counts.transformed.csv").is_file()

    def test_flags_override_config(self, experiment, tmp_path):
        path = write_config(experiment)
        out_dir = tmp_path / "override"
        code = run_cli([
            "run", "--config", str(path), "--method", "log1p", "--no-figures",
            "--output", str(out_dir), "--genes", "zld",
        ])
        assert code == 0
        report = pd.read_csv(out_dir / "genes_long.csv")
        assert set(report["gene_id"]) == {KNOCKDOWN_GENE}
        assert not (experiment.root / "results").exists()

    def test_missing_config(self, tmp_path, capsys):
        code = main(["run", "--config", str(tmp_path / "missing.yaml")])
        assert code == 1
        assert "Error: config file error" in capsys.readouterr().err

    def test_invalid_config_value(self, experiment, capsys):
        path = write_config(experiment)
        config = yaml.safe_load(path.read_text())
        config["normalization"] = {"method": "rlog"}
        path.write_text(yaml.safe_dump(config, sort_keys=False))
        code = main(["run", "--config", str(path)])
        assert code == 1
        assert "rlog" in capsys.readouterr().err

    def test_pipeline_error(self, experiment, capsys):
        path = write_config(experiment, genes=["not_a_gene"])
        code = run_cli(["run", "--config", str(path), "--method", "log1p", "--no-figures"])
        assert code == 1
        assert "not_a_gene" in capsys.readouterr().err


class TestGenesCommand:
    """countscope genes."""

    @pytest.fixture
    def normalized(self, experiment):
        path = write_config(experiment)
        assert run_cli(["run", "--config", str(path), "--method", "log1p", "--no-figures"]) == 0
        return experiment.root / "results" / "counts.normalized.csv"

    def test_table(self, experiment, normalized, tmp_path):
        out = tmp_path / "genes"
        code = main([
            "genes", "--counts", str(normalized), "--genes", "zld",
            "--gene-names", str(experiment.gene_names), "--output", str(out),
            "--reference", "Genotype=WT", "--reference", "Cell_Cycle=cc12,cc13,cc14",
            "--no-figures",
        ])
        assert code == 0
        report = pd.read_csv(out / "genes_long.csv")
        assert len(report) == 12
        assert list(report.columns[:4]) == ["gene_id", "gene_name", "sample", "count"]
        assert set(report["Genotype"]) == {"WT", "KD"}

    def test_figures(self, experiment, normalized, tmp_path):
        out = tmp_path / "genes"
        code = main([
            "genes", "--counts", str(normalized), "--genes", KNOCKDOWN_GENE,
            "--output", str(out), "--format", "svg",
        ])
        assert code == 0
        assert (out / "figures" / f"gene_{KNOCKDOWN_GENE}_boxplot.svg").is_file()
        assert (out / "figures" / f"gene_{KNOCKDOWN_GENE}_trend.svg").is_file()

    def test_unknown_gene(self, normalized, tmp_path, capsys):
        code = main(["genes", "--counts", str(normalized), "--genes", "zld", "--output", str(tmp_path)])
        assert code == 1
        assert "Unknown genes" in capsys.readouterr().err

    def test_bad_reference_flag(self, normalized, tmp_path):
        with pytest.raises(SystemExit):
            main(["genes", "--counts", str(normalized), "--genes", "x", "--output", str(tmp_path),
                  "--reference", "Genotype"])
