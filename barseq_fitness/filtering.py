"""
Time-zero coverage filtering.
"""

import logging

import pandas as pd

from .errors import InsufficientCoverageError

logger = logging.getLogger(__name__)


MIN_STRAIN_N0 = 3
MIN_GENE_N0 = 30

_STRAIN_KEYS = ["barcode", "scaffold", "pos", "locusId", "Condition"]


def reference_counts(
    long: pd.DataFrame,
    min_strain_n0: int = MIN_STRAIN_N0,
    min_gene_n0: int = MIN_GENE_N0,
) -> pd.DataFrame:
    """
    Sum time-zero reads per strain and condition and drop poorly covered
    strains and genes.

    Two criteria are applied, per condition:
    1. A strain whose summed reference reads ``n0`` are below
       ``min_strain_n0`` is dropped.
    2. A gene whose surviving strains sum to fewer than ``min_gene_n0``
       reference reads is dropped.

    Replicate reference samples of a condition are pooled by summation.

    Parameters
    ----------
    long : DataFrame from ``join_tables``.
    min_strain_n0 : int
        Minimum reference reads per strain.
    min_gene_n0 : int
        Minimum reference reads per gene.

    Returns
    -------
    DataFrame with columns barcode, scaffold, pos, locusId, Condition, n0.
    """
    ref = long.loc[long["Reference"]]

    n0 = (
        ref.groupby(_STRAIN_KEYS, sort=True)["Counts"]
        .sum()
        .rename("n0")
        .reset_index()
    )
    n0 = n0.loc[n0["n0"] >= min_strain_n0]

    gene_n0 = n0.groupby(["locusId", "Condition"])["n0"].transform("sum")
    n0 = n0.loc[gene_n0 >= min_gene_n0]

    logger.info(
        "%d strain/condition pairs pass reference coverage filters", len(n0)
    )
    return n0.reset_index(drop=True)


def apply_reference(long: pd.DataFrame, reference: pd.DataFrame) -> pd.DataFrame:
    """
    Attach ``n0`` to the non-reference observations of covered strains.

    Reference rows are dropped: their reads now live in ``n0``. A condition
    with no covered strain is logged and left empty; losing every strain of
    every condition raises ``InsufficientCoverageError``.
    """
    keys = reference[["barcode", "locusId", "Condition", "n0"]].drop_duplicates()
    samples = long.loc[~long["Reference"]]
    out = samples.merge(keys, on=["barcode", "locusId", "Condition"], how="inner")

    empty = sorted(set(samples["Condition"]) - set(out["Condition"]))
    for condition in empty:
        logger.warning("No strain passes reference coverage for condition '%s'", condition)

    if out.empty:
        raise InsufficientCoverageError(
            "No strain passes the reference coverage filters in any condition"
        )
    return out.reset_index(drop=True)
