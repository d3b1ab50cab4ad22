"""
countscope CLI - Command-line interface for RNA-seq exploratory analysis.

Commands:
    countscope run    - Full pipeline from quantification files to figures
    countscope genes  - Gene-level report from a saved count matrix
"""

import argparse
import sys
from typing import Optional, List

from countscope import __version__


def main(args: Optional[List[str]] = None) -> int:
    """Main CLI dispatcher for countscope."""
    parser = argparse.ArgumentParser(
        prog="countscope",
        description="Exploratory analysis of RNA-seq count experiments",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  run     Import, filter, normalize, cluster and project; draw figures
  genes   Gene-level report (long table + plots) from a saved matrix

Examples:
  countscope run --config pipeline.yaml
  countscope run --config pipeline.yaml --min-samples 3 --method log1p --no-figures
  countscope genes --counts results/counts.normalized.csv --gene-names names.tsv \\
      --genes zld FBgn0000490 --output results/genes
        """
    )

    parser.add_argument(
        "--version", "-V",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    from countscope.cli import run, genes
    run.register_parser(subparsers)
    genes.register_parser(subparsers)

    parsed_args = parser.parse_args(args)

    if parsed_args.command is None:
        parser.print_help()
        return 0

    return parsed_args.func(parsed_args)


if __name__ == "__main__":
    sys.exit(main())
