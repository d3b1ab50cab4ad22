"""
End-to-end exploratory analysis of an RNA-seq experiment.

Stages, each producing a new immutable artifact:

    1. Annotations: transcript -> gene map, gene -> name map
    2. Sample sheet and report fields with reference levels (fails fast on a
       bad reference)
    3. Per-sample quantification files -> raw gene counts
    4. Technical replicates summed per biological replicate (optional)
    5. Low-count filter
    6. Size factors, dispersion fit, variance-stabilized matrix
    7. Sample distances, leaf-sorted clustering, PCA, top-gene clustering
    8. Gene-level report for genes of interest

Every input and output location comes from the PipelineConfig; nothing
depends on the working directory.

Examples:
    >>> from countscope.config import load_pipeline_config
    >>> from countscope.pipeline import run_pipeline
    >>> result = run_pipeline(load_pipeline_config(Path("pipeline.yaml")))
    >>> result.projection.percent_variance
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

import countscope
from countscope.config import PipelineConfig, validate_config
from countscope.core.countmatrix import CountMatrix
from countscope.core.transform import Transform
from countscope.io import (
    import_abundances,
    load_gene_name_map,
    load_sample_table,
    load_transcript_gene_map,
    write_count_matrix,
    write_factors,
    write_sample_table,
)
from countscope.quality import LowCountFilter, ReplicateCollapser
from countscope.report import GeneReportBuilder
from countscope.stats import (
    ClusterTree,
    NormalizationResult,
    ProjectionResult,
    VarianceStabilizer,
    cluster_genes,
    cluster_samples,
    pca_projection,
    sample_distances,
    sort_dendrogram,
)
from countscope.utils import atomic_write_json
from countscope.viz import FigureCollection, GeneVisualizer, SampleVisualizer

logger = logging.getLogger(__name__)

__all__ = ['PipelineResult', 'run_pipeline', 'draw_figures']


@dataclass
class PipelineResult:
    """
    Every artifact of one pipeline run.

    Attributes:
        config: Configuration the run used
        sample_table: Sample sheet (one row per run) with releveled factors
        raw: Imported counts, one column per run
        collapsed: Counts after summing technical replicates (same as raw
            when no grouping column is configured)
        filtered: Counts after the low-count filter
        normalization: Size factors, normalized and transformed matrices
        distances: Sample x sample Euclidean distances
        sample_tree: Leaf-sorted sample clustering
        projection: PCA of samples
        gene_tree: Leaf-sorted clustering of the most variable genes
        top_genes: Gene-centered values the gene tree was built on
        report: Long-form gene report (None when no genes were requested)
        figures: Figures drawn (None when figures are disabled)
        outputs: Output name -> written path
        manifest: Content of run_manifest.json
    """
    config: PipelineConfig
    sample_table: pd.DataFrame
    raw: CountMatrix
    collapsed: CountMatrix
    filtered: CountMatrix
    normalization: NormalizationResult
    distances: pd.DataFrame
    sample_tree: ClusterTree
    projection: ProjectionResult
    gene_tree: Optional[ClusterTree] = None
    top_genes: Optional[CountMatrix] = None
    report: Optional[pd.DataFrame] = None
    figures: Optional[FigureCollection] = None
    outputs: Dict[str, Path] = field(default_factory=dict)
    manifest: Dict[str, Any] = field(default_factory=dict)

    @property
    def transformed(self) -> CountMatrix:
        return self.normalization.transformed

    @property
    def normalized(self) -> CountMatrix:
        return self.normalization.normalized


def _shape(matrix: CountMatrix) -> Dict[str, int]:
    return {"genes": matrix.n_genes, "samples": matrix.n_samples}


def run_pipeline(config: PipelineConfig, make_figures: bool = True) -> PipelineResult:
    """
    Run all stages and write outputs under `config.output.directory`.

    Parameters:
        config: Validated or unvalidated configuration (validated here)
        make_figures: Draw and save figures

    Returns:
        PipelineResult with every artifact

    Raises:
        ValueError: Invalid configuration
        MissingReferenceLevel: A configured reference level is not observed
            (raised while loading the sample sheet, before any counts are read)
        SampleFileMismatch: Samples and quantification files do not pair up
        EmptyAfterFiltering: No gene passes the low-count filter
    """
    validate_config(config)
    started_at = datetime.now()
    output_dir = Path(config.output.directory)
    output_dir.mkdir(parents=True, exist_ok=True)
    outputs: Dict[str, Path] = {}
    transforms: List[Transform] = []

    logger.info(f"countscope {countscope.__version__}: writing results to {output_dir}")

    # 1. Annotations
    tx2gene = load_transcript_gene_map(config.inputs.tx2gene)
    gene_names = None
    if config.inputs.gene_names is not None:
        gene_names = load_gene_name_map(config.inputs.gene_names)

    # 2. Sample sheet
    sample_table = load_sample_table(
        config.inputs.samples,
        id_col=config.samples.id_col,
        factors=config.samples.factors,
    )

    # Report fields and reference levels are checked against the sample IDs
    # before any counts are read
    builder = None
    if config.report.genes:
        builder = GeneReportBuilder(
            gene_names=gene_names,
            id_fields=config.report.id_fields,
            delimiter=config.report.delimiter,
            reference_levels=config.report.reference_levels,
        )
        if config.samples.group_col:
            planned_ids = pd.unique(sample_table[config.samples.group_col])
        else:
            planned_ids = sample_table.index
        builder.decompose_ids(planned_ids)

    # 3. Import
    raw = import_abundances(
        sample_table,
        config.inputs.quant_dir,
        tx2gene,
        fmt=config.inputs.quant_format,
        dir_col=config.inputs.quant_dir_col,
    )

    # 4. Technical replicates
    collapsed = raw
    if config.samples.group_col:
        collapser = ReplicateCollapser(
            group_col=config.samples.group_col,
            provenance_col=config.samples.provenance_col,
        )
        collapsed = collapser.apply(raw)
        transforms.append(collapser)
    outputs["counts_raw"] = write_count_matrix(collapsed, output_dir / "counts.raw.csv")
    outputs["samples"] = write_sample_table(collapsed.sample_metadata, output_dir / "samples.csv")

    # 5. Low-count filter
    low_count = LowCountFilter(
        min_count=config.filter.min_count,
        min_samples=config.filter.min_samples,
    )
    filtered = low_count.apply(collapsed)
    transforms.append(low_count)

    # 6. Normalization and variance stabilization
    stabilizer = VarianceStabilizer(
        design=config.normalization.resolved_design(config.samples.factors),
        method=config.normalization.method,
        blind=config.normalization.blind,
        fit_type=config.normalization.fit_type,
    )
    normalization = stabilizer.run(filtered)
    transforms.append(stabilizer)
    outputs["size_factors"] = write_factors(normalization.size_factors, output_dir / "size_factors.csv")
    outputs["counts_normalized"] = write_count_matrix(
        normalization.normalized, output_dir / "counts.normalized.csv"
    )
    outputs["counts_transformed"] = write_count_matrix(
        normalization.transformed, output_dir / "counts.transformed.csv"
    )

    # 7. Similarity and projection
    transformed = normalization.transformed
    distances = sample_distances(transformed)
    sample_tree = sort_dendrogram(cluster_samples(distances, method=config.projection.linkage))
    logger.info(f"Sample leaf order: {sample_tree.leaf_labels}")

    projection = pca_projection(
        transformed,
        n_top=config.projection.n_top,
        n_components=config.projection.n_components,
    )

    gene_tree = None
    top_genes = None
    if transformed.n_genes >= 2:
        tree, top_genes = cluster_genes(
            transformed,
            n_top=config.projection.heatmap_genes,
            method=config.projection.linkage,
        )
        gene_tree = sort_dendrogram(tree)

    path = output_dir / "sample_distances.csv"
    distances.rename_axis("sample").to_csv(path)
    outputs["sample_distances"] = path

    path = output_dir / "pca.csv"
    projection.with_metadata(transformed.sample_metadata).rename_axis("sample").to_csv(path)
    outputs["pca"] = path

    # 8. Gene report
    report = None
    if builder is not None:
        source = normalization.normalized if config.report.matrix == "normalized" else transformed
        report = builder.to_long(source, config.report.genes)
        path = output_dir / "genes_long.csv"
        report.to_csv(path, index=False)
        outputs["genes_long"] = path

    result = PipelineResult(
        config=config,
        sample_table=sample_table,
        raw=raw,
        collapsed=collapsed,
        filtered=filtered,
        normalization=normalization,
        distances=distances,
        sample_tree=sample_tree,
        projection=projection,
        gene_tree=gene_tree,
        top_genes=top_genes,
        report=report,
        outputs=outputs,
    )

    if make_figures:
        result.figures = draw_figures(result, gene_names=gene_names)
        saved = result.figures.save_all(
            output_dir / "figures",
            format=config.output.format,
            dpi=config.output.dpi,
        )
        outputs.update({f"figure_{key}": p for key, p in saved.items()})

    manifest = {
        "countscope_version": countscope.__version__,
        "started_at": started_at.isoformat(),
        "finished_at": datetime.now().isoformat(),
        "config": config.to_dict(),
        "transforms": [t.describe() for t in transforms],
        "shapes": {
            "raw": _shape(raw),
            "collapsed": _shape(collapsed),
            "filtered": _shape(filtered),
        },
        "normalization": {
            "method": normalization.method,
            "design": normalization.design,
            **normalization.diagnostics,
        },
        "sample_leaf_order": sample_tree.leaf_labels,
        "percent_variance": {k: float(v) for k, v in projection.percent_variance.items()},
        "outputs": {key: str(p) for key, p in outputs.items()},
        "figures": result.figures.describe() if result.figures is not None else [],
    }
    manifest_path = output_dir / "run_manifest.json"
    atomic_write_json(manifest_path, manifest)
    outputs["manifest"] = manifest_path
    result.manifest = manifest

    if result.figures is not None:
        result.figures.close_all()

    logger.info(f"Pipeline complete: {len(outputs)} outputs in {output_dir}")
    return result


def draw_figures(result: PipelineResult, gene_names: Optional[pd.Series] = None) -> FigureCollection:
    """
    Draw the standard figure set for a finished run.

    Sample figures color by the first configured factor and mark by the
    second; gene figures use the report's id fields.
    """
    config = result.config
    factor_names = list(config.samples.factors)
    color_by = factor_names[0] if factor_names else None
    marker_by = factor_names[1] if len(factor_names) > 1 else None

    collection = FigureCollection()
    samples_viz = SampleVisualizer(
        palette=config.output.palette,
        style=config.output.style,
        color_by=color_by,
        marker_by=marker_by,
    )
    metadata = result.transformed.sample_metadata

    collection.add("size_factors", samples_viz.plot_size_factors(result.normalization.size_factors))
    collection.add(
        "sample_distances",
        samples_viz.plot_sample_distances(result.distances, result.sample_tree, metadata),
    )
    if result.projection.coordinates.shape[1] >= 2:
        collection.add("pca", samples_viz.plot_pca(result.projection, metadata))

    if result.gene_tree is not None and result.top_genes is not None:
        labels = None
        if gene_names is not None:
            labels = [str(gene_names.get(g, g)) for g in result.top_genes.gene_ids]
        collection.add(
            "top_variable_genes",
            samples_viz.plot_top_genes(result.top_genes, result.gene_tree, result.sample_tree, labels),
        )

    if result.report is not None and len(config.report.id_fields) >= 2:
        genes_viz = GeneVisualizer(
            palette=config.output.palette,
            style=config.output.style,
            genotype_col=config.report.id_fields[0],
            stage_col=config.report.id_fields[1],
            value_label=(
                "Normalized count" if config.report.matrix == "normalized" else "Transformed expression"
            ),
        )
        for gene_id in pd.unique(result.report["gene_id"]):
            collection.add(f"gene_{gene_id}_boxplot", genes_viz.plot_gene_boxplot(result.report, gene_id))
            collection.add(f"gene_{gene_id}_trend", genes_viz.plot_gene_trend(result.report, gene_id))

    logger.info(f"Drew {len(collection)} figures")
    return collection
