"""
Pytest configuration and shared fixtures.

Provides a synthetic embryo RNA-seq experiment written to disk (annotation
tables, sample sheet, salmon-style quantification directories) and small
in-memory count matrices.
"""

import matplotlib
matplotlib.use("Agg")

from dataclasses import dataclass
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from countscope.core.countmatrix import CountMatrix

GENOTYPES = ("WT", "KD")
STAGES = ("cc12", "cc13", "cc14")
SPIKE_IN = "ERCC-00002"
KNOCKDOWN_GENE = "FBgn0000000"


@dataclass
class Experiment:
    """Paths and ground truth of a synthetic experiment on disk."""
    root: Path
    tx2gene: Path
    gene_names: Path
    samples: Path
    quant_dir: Path
    runs: list
    biological_samples: list
    n_genes: int
    zero_genes: list
    transcript_counts: dict


def gene_id(g: int) -> str:
    return f"FBgn{g:07d}"


def write_experiment(
    root: Path,
    n_genes: int = 60,
    n_reps: int = 2,
    n_lanes: int = 2,
    n_zero_genes: int = 3,
    seed: int = 0,
) -> Experiment:
    """
    Write a 2-genotype x 3-stage experiment with technical-replicate lanes.

    Design:
        - Two transcripts per gene; the last `n_zero_genes` genes have no reads
        - Gene 0 ("zld") is knocked down: KD runs carry ~10% of WT counts
        - Every quant file also lists a spike-in transcript absent from the
          transcript-to-gene map
        - Runs are named <sample>_L<lane>, samples <genotype>_<stage>_<rep>
        - Run directories are written in reverse order so that directory
          listing order differs from the sample sheet
    """
    rng = np.random.default_rng(seed)
    root.mkdir(parents=True, exist_ok=True)

    transcripts = [(f"FBtr{g:05d}{k}", gene_id(g)) for g in range(n_genes) for k in range(2)]
    tx2gene = root / "tx2gene.tsv"
    pd.DataFrame(transcripts, columns=["transcript_id", "gene_id"]).to_csv(tx2gene, sep="\t", index=False)

    names = ["zld"] + [f"gene{g}" for g in range(1, n_genes)]
    gene_names = root / "gene_names.tsv"
    pd.DataFrame({"gene_id": [gene_id(g) for g in range(n_genes)], "gene_name": names}).to_csv(
        gene_names, sep="\t", index=False
    )

    rows = []
    for genotype in GENOTYPES:
        for stage in STAGES:
            for rep in range(1, n_reps + 1):
                sample = f"{genotype}_{stage}_{rep}"
                for lane in range(1, n_lanes + 1):
                    rows.append({
                        "run": f"{sample}_L{lane}",
                        "sample": sample,
                        "genotype": genotype,
                        "cell_cycle": stage,
                        "replicate": str(rep),
                        "lane": f"L{lane}",
                    })
    sheet = pd.DataFrame(rows)
    samples = root / "samples.tsv"
    sheet.to_csv(samples, sep="\t", index=False)

    zero_genes = [gene_id(g) for g in range(n_genes - n_zero_genes, n_genes)]
    base = rng.uniform(20, 400, size=n_genes)
    stage_effect = rng.uniform(0.5, 2.0, size=(n_genes, len(STAGES)))

    quant_dir = root / "quant"
    transcript_counts = {}
    for row in reversed(rows):
        stage_idx = STAGES.index(row["cell_cycle"])
        depth = rng.uniform(0.8, 1.25)
        means = base * stage_effect[:, stage_idx] * depth
        if row["genotype"] == "KD":
            means[0] *= 0.1
        gene_counts = rng.poisson(means).astype(float)
        gene_counts[n_genes - n_zero_genes:] = 0.0

        split = rng.uniform(0.2, 0.8, size=n_genes)
        tx_counts = []
        for g in range(n_genes):
            first = np.floor(gene_counts[g] * split[g])
            tx_counts.extend([first, gene_counts[g] - first])

        names_col = [t for t, _ in transcripts] + [SPIKE_IN]
        reads = tx_counts + [float(rng.integers(50, 100))]
        quant = pd.DataFrame({
            "Name": names_col,
            "Length": 1500,
            "EffectiveLength": 1350.0,
            "TPM": 1.0,
            "NumReads": reads,
        })
        run_dir = quant_dir / row["run"]
        run_dir.mkdir(parents=True)
        quant.to_csv(run_dir / "quant.sf", sep="\t", index=False)
        transcript_counts[row["run"]] = pd.Series(reads, index=names_col)

    biological = list(dict.fromkeys(r["sample"] for r in rows))
    return Experiment(
        root=root,
        tx2gene=tx2gene,
        gene_names=gene_names,
        samples=samples,
        quant_dir=quant_dir,
        runs=[r["run"] for r in rows],
        biological_samples=biological,
        n_genes=n_genes,
        zero_genes=zero_genes,
        transcript_counts=transcript_counts,
    )


@pytest.fixture
def experiment(tmp_path):
    """Synthetic experiment: 24 runs, 12 biological samples, 60 genes."""
    return write_experiment(tmp_path / "experiment")


def make_count_matrix(data, gene_ids=None, sample_ids=None, metadata=None, kind="raw"):
    """CountMatrix from a nested list / array with default labels."""
    data = np.asarray(data, dtype=float)
    if gene_ids is None:
        gene_ids = [f"G{i}" for i in range(data.shape[0])]
    if sample_ids is None:
        sample_ids = [f"S{j}" for j in range(data.shape[1])]
    sample_ids = pd.Index(sample_ids)
    if metadata is not None:
        metadata = pd.DataFrame(metadata, index=sample_ids)
    return CountMatrix(
        data=data,
        gene_ids=pd.Index(gene_ids),
        sample_ids=sample_ids,
        sample_metadata=metadata,
        kind=kind,
    )


def design_matrix(n_genes: int = 200, n_reps: int = 2, seed: int = 1) -> CountMatrix:
    """
    Raw counts for WT/KD x cc12/cc13/cc14 with `n_reps` replicates each.

    Negative-binomial counts with a genotype effect on the first 20 genes
    and samples named <genotype>_<stage>_<rep>.
    """
    rng = np.random.default_rng(seed)
    sample_ids, genotypes, stages = [], [], []
    for genotype in GENOTYPES:
        for stage in STAGES:
            for rep in range(1, n_reps + 1):
                sample_ids.append(f"{genotype}_{stage}_{rep}")
                genotypes.append(genotype)
                stages.append(stage)

    means = rng.uniform(50, 1000, size=(n_genes, 1)) * np.ones((1, len(sample_ids)))
    kd = np.array([g == "KD" for g in genotypes])
    means[:20, kd] *= 4.0
    dispersion = 0.05
    p = 1.0 / (1.0 + means * dispersion)
    counts = rng.negative_binomial(1.0 / dispersion, p).astype(float)

    metadata = pd.DataFrame(
        {
            "genotype": pd.Categorical(genotypes, categories=list(GENOTYPES)),
            "cell_cycle": pd.Categorical(stages, categories=list(STAGES)),
        },
        index=pd.Index(sample_ids),
    )
    return CountMatrix(
        data=counts,
        gene_ids=pd.Index([gene_id(g) for g in range(n_genes)]),
        sample_ids=pd.Index(sample_ids),
        sample_metadata=metadata,
        kind="raw",
    )


@pytest.fixture
def designed_counts():
    """Raw counts, 200 genes x 12 samples, genotype effect on 20 genes."""
    return design_matrix()
