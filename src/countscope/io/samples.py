"""
Sample sheet loading and categorical factor releveling.

Biological Context:
    The sample sheet lists one row per sequencing run with the experimental
    covariates: genotype (wild type vs knockdown), cell-cycle stage of the
    embryo, biological replicate, and sequencing lane. Statistical models and
    plots compare every level against a reference level (wild type, the
    earliest stage), so the reference must come first in each factor's
    category list.

Engineering Design:
    - Factor columns become pandas Categoricals, categories in first-seen
      order unless an explicit order is given
    - Reference levels are validated at load time, before any count work,
      and a missing reference fails with MissingReferenceLevel
    - Returns a new DataFrame; inputs are never modified

Examples:
    >>> from countscope.io.samples import load_sample_table, relevel
    >>> samples = load_sample_table(
    ...     "samples.tsv",
    ...     id_col="run",
    ...     factors={"genotype": "WT", "cell_cycle": ["cc12", "cc13", "cc14"]},
    ... )
    >>> list(samples["genotype"].cat.categories)
    ['WT', 'KD']
"""

from __future__ import annotations

from pathlib import Path
from typing import Mapping, Sequence, Union
import logging
import pandas as pd

from countscope.core.errors import MissingReferenceLevel
from countscope.io.loaders import read_delimited

logger = logging.getLogger(__name__)

__all__ = ['load_sample_table', 'relevel', 'set_levels', 'apply_factors', 'FactorSpec']

# A reference level, or a full level order whose first entry is the reference
FactorSpec = Union[str, Sequence[str]]


def _observed_levels(values: pd.Series) -> list:
    # Categories in their declared order, restricted to those that occur
    if isinstance(values.dtype, pd.CategoricalDtype):
        return [c for c in values.cat.categories if (values == c).any()]
    return list(pd.unique(values.dropna()))


def relevel(values: pd.Series, reference: str, column: str | None = None) -> pd.Series:
    """
    Make `reference` the first category, preserving the order of the others.

    Args:
        values: Series of labels (categorical or plain)
        reference: Level to place first
        column: Column name for error messages (defaults to values.name)

    Returns:
        New categorical Series with reordered categories

    Raises:
        MissingReferenceLevel: If reference is not an observed level

    Examples:
        >>> s = pd.Series(["cc13", "cc12", "cc14", "cc12"])
        >>> list(relevel(s, "cc12").cat.categories)
        ['cc12', 'cc13', 'cc14']
        >>> list(relevel(s, "cc14").cat.categories)
        ['cc14', 'cc13', 'cc12']
    """
    levels = _observed_levels(values)
    if reference not in levels:
        raise MissingReferenceLevel(column or str(values.name), reference, levels)

    new_levels = [reference] + [lvl for lvl in levels if lvl != reference]
    return pd.Series(
        pd.Categorical(values, categories=new_levels),
        index=values.index,
        name=values.name,
    )


def set_levels(values: pd.Series, levels: Sequence[str], column: str | None = None) -> pd.Series:
    """
    Impose a full level order; the first entry becomes the reference.

    Raises:
        MissingReferenceLevel: If the first level is not observed
        ValueError: If observed levels are absent from `levels`
    """
    column = column or str(values.name)
    levels = list(levels)
    if not levels:
        raise ValueError(f"Empty level order for column '{column}'")

    observed = _observed_levels(values)
    if levels[0] not in observed:
        raise MissingReferenceLevel(column, levels[0], observed)

    unlisted = [lvl for lvl in observed if lvl not in levels]
    if unlisted:
        raise ValueError(
            f"Levels {unlisted} of column '{column}' are missing from the requested order {levels}"
        )

    return pd.Series(
        pd.Categorical(values, categories=levels),
        index=values.index,
        name=values.name,
    )


def apply_factors(table: pd.DataFrame, factors: Mapping[str, FactorSpec]) -> pd.DataFrame:
    """
    Convert factor columns to categoricals with their reference level first.

    Args:
        table: Sample table
        factors: column -> reference level (str) or full level order (list)

    Returns:
        New DataFrame with the factor columns releveled

    Raises:
        KeyError: If a factor column is missing
        MissingReferenceLevel: If a reference level is not observed
    """
    result = table.copy()
    for column, spec in factors.items():
        if column not in result.columns:
            raise KeyError(
                f"Factor column '{column}' not in sample table. "
                f"Available: {list(result.columns)}"
            )
        values = result[column]
        if not isinstance(values.dtype, pd.CategoricalDtype):
            values = values.astype(str).where(values.notna())
        if isinstance(spec, str):
            result[column] = relevel(values, spec, column=column)
        else:
            result[column] = set_levels(values, spec, column=column)
        logger.debug(f"Factor '{column}' levels: {list(result[column].cat.categories)}")
    return result


def load_sample_table(
    path: Path | str,
    id_col: str,
    factors: Mapping[str, FactorSpec] | None = None,
    delimiter: str | None = None,
) -> pd.DataFrame:
    """
    Load the sample sheet, one row per sequencing run.

    Args:
        path: Delimited file with a header row
        id_col: Column holding the unique run/sample identifier; becomes
            the index
        factors: Factor columns to relevel (see `apply_factors`)
        delimiter: Column delimiter (None = sniff)

    Returns:
        DataFrame indexed by sample ID, rows in file order

    Raises:
        FileNotFoundError: If path does not exist
        KeyError: If id_col or a factor column is missing
        ValueError: If sample IDs are duplicated or missing
        MissingReferenceLevel: If a reference level is not observed
    """
    table = read_delimited(path, delimiter=delimiter, dtype=str)
    table.columns = [str(c).strip() for c in table.columns]

    if id_col not in table.columns:
        raise KeyError(
            f"Sample ID column '{id_col}' not in {path}. "
            f"Available: {list(table.columns)}"
        )

    ids = table[id_col].str.strip()
    if ids.isna().any():
        raise ValueError(f"{int(ids.isna().sum())} rows without a sample ID in {path}")
    if ids.duplicated().any():
        dupes = ids[ids.duplicated()].unique().tolist()
        raise ValueError(f"Duplicate sample IDs in {path}: {dupes}")

    table = table.assign(**{id_col: ids}).set_index(id_col)

    if factors:
        table = apply_factors(table, factors)

    logger.info(
        f"Loaded sample table: {len(table)} rows, columns {list(table.columns)}"
    )
    return table
