"""
Pipeline CLI subcommand.

Runs every stage from per-sample quantification files to figures, driven by
a YAML/JSON config. Flags given on the command line override the config.

Usage:
    countscope run --config pipeline.yaml
    countscope run --config pipeline.yaml --output results/strict --min-samples 3
"""

import argparse
import sys
from datetime import datetime
from pathlib import Path

from countscope.cli._validators import _non_negative_float, _positive_int


def register_parser(subparsers):
    """Register run subcommand."""
    parser = subparsers.add_parser(
        "run",
        help="Run the full exploratory pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description="""
Import quantifications, collapse technical replicates, filter low-count
genes, normalize and variance-stabilize, then compute sample distances,
clustering, PCA and the gene report.

Outputs (under --output or output.directory):
  counts.raw.csv, counts.normalized.csv, counts.transformed.csv
  size_factors.csv, sample_distances.csv, pca.csv, genes_long.csv
  figures/, run_manifest.json
        """
    )

    parser.add_argument(
        "--config", "-c", type=Path, required=True,
        help="Pipeline configuration (.yaml, .yml or .json)"
    )
    parser.add_argument(
        "--output", "-o", type=Path, default=None,
        help="Output directory (overrides output.directory)"
    )
    parser.add_argument(
        "--min-count", type=_non_negative_float, default=None,
        help="Count a sample must exceed to express a gene (default: 1)"
    )
    parser.add_argument(
        "--min-samples", type=_positive_int, default=None,
        help="Samples that must express a gene to keep it (default: 2)"
    )
    parser.add_argument(
        "--n-top", type=_positive_int, default=None,
        help="Most variable genes used for PCA (default: 3000)"
    )
    parser.add_argument(
        "--method", choices=["vst", "log1p"], default=None,
        help="Variance stabilization (default: vst)"
    )
    parser.add_argument(
        "--linkage", choices=["complete", "average", "single", "ward"], default=None,
        help="Hierarchical clustering linkage (default: complete)"
    )
    parser.add_argument(
        "--genes", nargs="+", default=None,
        help="Genes (IDs or names) for the gene report"
    )
    parser.add_argument(
        "--format", "-f", choices=["png", "pdf", "svg"], default=None,
        help="Figure format (default: png)"
    )
    parser.add_argument(
        "--no-figures", action="store_true",
        help="Skip drawing figures"
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true",
        help="Debug logging"
    )

    parser.set_defaults(func=run_run)


def run_run(args: argparse.Namespace) -> int:
    """Execute the run command."""
    import logging
    from countscope.config import load_pipeline_config, merge_config_with_args, validate_config
    from countscope.core.errors import CountscopeError
    from countscope.pipeline import run_pipeline

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    print(f"Loading configuration from: {args.config}")
    try:
        config = load_pipeline_config(args.config)
        config = merge_config_with_args(config, args)
        validate_config(config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: config file error: {e}", file=sys.stderr)
        return 1

    start_time = datetime.now()
    print(f"\n{'='*70}")
    print("  RNA-seq Exploratory Analysis")
    print(f"{'='*70}")
    print(f"Started: {start_time.strftime('%Y-%m-%d %H:%M:%S')}\n")

    try:
        result = run_pipeline(config, make_figures=not args.no_figures)
    except (CountscopeError, FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyError as e:
        print(f"Error: {e.args[0] if e.args else e}", file=sys.stderr)
        return 1

    elapsed = (datetime.now() - start_time).total_seconds()
    pct = result.projection.percent_variance

    print(f"\n{'='*70}")
    print("  Summary")
    print(f"{'='*70}")
    print(f"  Runs imported:      {result.raw.n_samples}")
    print(f"  Samples:            {result.collapsed.n_samples}")
    print(f"  Genes imported:     {result.raw.n_genes:,}")
    print(f"  Genes after filter: {result.filtered.n_genes:,}")
    print(f"  Method:             {result.normalization.method}")
    print("  PCA:                " + ", ".join(f"{k} {v:.1f}%" for k, v in pct.items()))
    print(f"  Sample order:       {' '.join(result.sample_tree.leaf_labels)}")
    if result.report is not None:
        print(f"  Gene report rows:   {len(result.report)}")
    print(f"\nOutputs written to {config.output.directory} in {elapsed:.1f}s")

    return 0
