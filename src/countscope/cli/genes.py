"""
Gene report CLI subcommand.

Builds the long-form per-gene table and per-gene plots from a count matrix
written by `countscope run`, without rerunning the pipeline.

Usage:
    countscope genes --counts results/counts.normalized.csv --genes zld --output results/genes
    countscope genes --counts results/counts.normalized.csv --gene-names names.tsv \\
        --genes zld bcd --reference Genotype=WT --reference Cell_Cycle=cc12,cc13,cc14
"""

import argparse
import sys
from pathlib import Path

from countscope.cli._validators import _reference_level


def register_parser(subparsers):
    """Register genes subcommand."""
    parser = subparsers.add_parser(
        "genes",
        help="Gene-level report from a saved count matrix",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description="""
Reshape counts for genes of interest into one row per (gene, sample), with
covariates decomposed from sample IDs (e.g. WT_cc12_1 -> Genotype,
Cell_Cycle, Replicate), and draw a boxplot and a stage trend per gene.
        """
    )

    parser.add_argument(
        "--counts", type=Path, required=True,
        help="Count matrix CSV (gene IDs in the first column)"
    )
    parser.add_argument(
        "--genes", nargs="+", required=True,
        help="Genes to report (IDs or names)"
    )
    parser.add_argument(
        "--output", "-o", type=Path, required=True,
        help="Output directory"
    )
    parser.add_argument(
        "--gene-names", type=Path, default=None,
        help="Gene ID -> name table (enables lookup by name)"
    )
    parser.add_argument(
        "--kind", choices=["normalized", "transformed"], default="normalized",
        help="What the matrix holds (default: normalized)"
    )
    parser.add_argument(
        "--id-fields", nargs="+", default=["Genotype", "Cell_Cycle", "Replicate"],
        help="Covariates encoded in sample IDs, in order"
    )
    parser.add_argument(
        "--delimiter", default="_",
        help="Separator between sample ID fields (default: _)"
    )
    parser.add_argument(
        "--reference", type=_reference_level, action="append", default=[],
        metavar="FIELD=LEVEL",
        help="Reference level (or full order L1,L2,...) for an id field; repeatable"
    )
    parser.add_argument(
        "--format", "-f", choices=["png", "pdf", "svg"], default="png",
        help="Figure format (default: png)"
    )
    parser.add_argument(
        "--style", choices=["paper", "presentation", "notebook"], default="paper",
        help="Visual style (default: paper)"
    )
    parser.add_argument(
        "--no-figures", action="store_true",
        help="Skip drawing figures"
    )

    parser.set_defaults(func=run_genes)


def run_genes(args: argparse.Namespace) -> int:
    """Execute the genes command."""
    import logging
    from countscope.core.errors import CountscopeError
    from countscope.io import load_count_matrix, load_gene_name_map
    from countscope.report import GeneReportBuilder
    from countscope.viz import FigureCollection, GeneVisualizer

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    logger = logging.getLogger(__name__)

    try:
        matrix = load_count_matrix(args.counts, kind=args.kind)
        gene_names = load_gene_name_map(args.gene_names) if args.gene_names else None

        builder = GeneReportBuilder(
            gene_names=gene_names,
            id_fields=args.id_fields,
            delimiter=args.delimiter,
            reference_levels=dict(args.reference),
        )
        report = builder.to_long(matrix, args.genes)
    except (CountscopeError, FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyError as e:
        print(f"Error: {e.args[0] if e.args else e}", file=sys.stderr)
        return 1

    args.output.mkdir(parents=True, exist_ok=True)
    table_path = args.output / "genes_long.csv"
    report.to_csv(table_path, index=False)
    print(f"Wrote {len(report)} rows to {table_path}")

    if args.no_figures or len(args.id_fields) < 2:
        return 0

    viz = GeneVisualizer(
        style=args.style,
        genotype_col=args.id_fields[0],
        stage_col=args.id_fields[1],
        value_label="Normalized count" if args.kind == "normalized" else "Transformed expression",
    )
    collection = FigureCollection()
    for gene_id in report["gene_id"].unique():
        collection.add(f"gene_{gene_id}_boxplot", viz.plot_gene_boxplot(report, gene_id))
        collection.add(f"gene_{gene_id}_trend", viz.plot_gene_trend(report, gene_id))

    saved = collection.save_all(args.output / "figures", format=args.format)
    collection.close_all()
    logger.info(f"Saved {len(saved)} figures to {args.output / 'figures'}")

    return 0
