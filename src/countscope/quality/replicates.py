"""
Technical replicate collapsing.

Biological Context:
    One embryo library is often sequenced on several lanes. Those runs are
    technical replicates: the same molecules sampled again, so their counts
    are summed (not averaged) into one column per biological replicate.
    Biological replicates stay separate because they carry the biological
    variance the dispersion model needs.

Engineering Design:
    - A Transform: raw CountMatrix in, collapsed raw CountMatrix out
    - Groups appear in order of first occurrence in the input columns
    - Covariates come from the first run of each group; runs of one group
      are expected to agree (inherited from the sample sheet design, not
      re-validated)
    - Total counts are preserved exactly

Examples:
    >>> from countscope.quality.replicates import ReplicateCollapser
    >>> collapser = ReplicateCollapser(group_col="sample", provenance_col="lane")
    >>> per_replicate = collapser.apply(per_run)
    >>> per_replicate.sample_metadata[["n_runs", "runs"]]
"""

from __future__ import annotations

import logging
import numpy as np
import pandas as pd

from countscope.core.countmatrix import CountMatrix
from countscope.core.transform import Transform

logger = logging.getLogger(__name__)

__all__ = ['ReplicateCollapser']


class ReplicateCollapser(Transform):
    """
    Sum technical-replicate columns into one column per biological replicate.

    Params:
        group_col: Metadata column identifying the biological replicate each
            run belongs to. Its values become the new sample IDs.
        provenance_col: Optional metadata column recorded in the output
            `runs` column (e.g. lane). Defaults to the input sample IDs.
        runs_sep: Separator for the `runs` provenance string.
    """

    def __init__(
        self,
        group_col: str,
        provenance_col: str | None = None,
        runs_sep: str = "+",
    ):
        super().__init__(
            name="ReplicateCollapser",
            params={
                "group_col": group_col,
                "provenance_col": provenance_col,
            }
        )
        self.group_col = group_col
        self.provenance_col = provenance_col
        self.runs_sep = runs_sep

    def validate(self, matrix: CountMatrix) -> list[str]:
        errors = super().validate(matrix)
        metadata = matrix.sample_metadata
        for col in (self.group_col, self.provenance_col):
            if col is not None and col not in metadata.columns:
                errors.append(
                    f"Column '{col}' not in sample metadata: {list(metadata.columns)}"
                )
        if self.group_col in metadata.columns and metadata[self.group_col].isna().any():
            errors.append(f"Column '{self.group_col}' has missing values")
        return errors

    def apply(self, matrix: CountMatrix) -> CountMatrix:
        """
        Collapse technical replicates.

        Raises:
            ValueError: If the grouping/provenance columns are missing
        """
        errors = self.validate(matrix)
        if errors:
            raise ValueError("Cannot collapse replicates: " + "; ".join(errors))

        metadata = matrix.sample_metadata
        groups = metadata[self.group_col].astype(str).to_numpy()
        group_order = list(pd.unique(groups))

        if self.provenance_col is None:
            provenance = matrix.sample_ids.astype(str).to_numpy()
        else:
            provenance = metadata[self.provenance_col].astype(str).to_numpy()

        collapsed = np.empty((matrix.n_genes, len(group_order)), dtype=matrix.data.dtype)
        first_rows = []
        n_runs = []
        runs = []
        for j, group in enumerate(group_order):
            members = groups == group
            collapsed[:, j] = matrix.data[:, members].sum(axis=1)
            first_rows.append(np.flatnonzero(members)[0])
            n_runs.append(int(members.sum()))
            runs.append(self.runs_sep.join(provenance[members]))

        new_ids = pd.Index(group_order, name=self.group_col)
        new_metadata = metadata.iloc[first_rows].drop(columns=[self.group_col]).copy()
        new_metadata.index = new_ids
        new_metadata["n_runs"] = n_runs
        new_metadata["runs"] = runs

        n_merged = sum(n > 1 for n in n_runs)
        logger.info(
            f"Collapsed {matrix.n_samples} runs into {len(group_order)} samples "
            f"({n_merged} with technical replicates)"
        )

        return CountMatrix(
            data=collapsed,
            gene_ids=matrix.gene_ids,
            sample_ids=new_ids,
            sample_metadata=new_metadata,
            kind=matrix.kind,
        )
