"""
Strain and gene fitness: log2 ratios against time-zero with a per-gene
pseudocount, averaged per gene with capped inverse-variance weights.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import pandas as pd

from .errors import UndefinedStatisticError

logger = logging.getLogger(__name__)


MIN_STRAINS = 3

SAMPLE_COLUMNS = ["ID", "Date", "Time", "Condition", "Replicate"]
FITNESS_COLUMNS = (
    ["barcode", "locusId"]
    + SAMPLE_COLUMNS
    + ["Counts", "n0", "Strains_per_gene", "Weight", "Strain_fitness", "Gene_fitness"]
)


def strain_variance(n, n0):
    """
    Approximate variance of log2((n + a) / (n0 + b)) under Poisson counts.
    """
    return (1 / (1 + n) + 1 / (1 + n0)) / np.log(2) ** 2


# A strain with 20 reads in both samples sets the weight ceiling
MAX_WEIGHT = 1 / strain_variance(20, 20)


def strain_weights(n, n0, max_weight: float = MAX_WEIGHT):
    """Inverse strain variance, capped at ``max_weight``."""
    return np.minimum(1 / strain_variance(n, n0), max_weight)


def strain_fitness(n, p, n0):
    """
    log2 ratio of ``n`` to ``n0`` stabilized by the pseudocount factor ``p``.
    """
    return np.log2(n + np.sqrt(p)) - np.log2(n0 + np.sqrt(1 / p))


@dataclass(frozen=True)
class CountTotals:
    """Reads summed over every non-reference observation."""

    sum_nafter: float
    sum_n0: float

    @classmethod
    def from_table(cls, df: pd.DataFrame) -> "CountTotals":
        totals = cls(float(df["Counts"].sum()), float(df["n0"].sum()))
        if totals.sum_nafter <= 0 or totals.sum_n0 <= 0:
            raise UndefinedStatisticError(
                f"Cannot scale pseudocounts: Sum_nafter={totals.sum_nafter}, "
                f"Sum_n0={totals.sum_n0}"
            )
        return totals

    @property
    def ratio(self) -> float:
        return self.sum_nafter / self.sum_n0


@dataclass(frozen=True)
class FixedFactor:
    """
    Pseudocount for genes with too few strains to estimate their own
    fold-change: the dataset-wide read ratio.
    """

    totals: CountTotals

    def pseudocounts(self, df: pd.DataFrame) -> pd.Series:
        return pd.Series(self.totals.ratio, index=df.index)


@dataclass(frozen=True)
class EstimatedFactor:
    """
    Pseudocount scaled by a first-pass estimate of each gene's fold-change:
    the median of its strains' fitness computed with ``p = 1``, centered on
    the dataset-wide ``center``.
    """

    totals: CountTotals
    center: float

    def pseudocounts(self, df: pd.DataFrame) -> pd.Series:
        prelim = preliminary_gene_fitness(df)
        return 2 ** (prelim - self.center) * self.totals.ratio


def preliminary_gene_fitness(df: pd.DataFrame) -> pd.Series:
    """Median of ``p = 1`` strain fitness per (sample, gene), broadcast to strains."""
    pre = pd.Series(strain_fitness(df["Counts"], 1, df["n0"]), index=df.index)
    return pre.groupby([df["ID"], df["locusId"]]).transform("median")


def preliminary_center(df: pd.DataFrame) -> float:
    """
    Median of the preliminary gene fitness over distinct (gene, sample) pairs.
    """
    if df.empty:
        raise UndefinedStatisticError("No gene to center preliminary fitness on")
    prelim = preliminary_gene_fitness(df)
    per_gene = prelim.groupby([df["locusId"], df["ID"]]).first()
    return float(per_gene.median())


def select_model(n_strains: int, min_strains: int = MIN_STRAINS) -> str:
    """Name of the pseudocount model for a gene with ``n_strains`` strains."""
    return "estimated" if n_strains >= min_strains else "fixed"


def _weighted_gene_fitness(df: pd.DataFrame, pseudocounts: pd.Series) -> pd.DataFrame:
    df = df.copy()
    df["Strain_fitness"] = strain_fitness(df["Counts"], pseudocounts, df["n0"])
    wf = df["Weight"] * df["Strain_fitness"]
    keys = [df["ID"], df["locusId"]]
    df["Gene_fitness"] = (
        wf.groupby(keys).transform("sum") / df["Weight"].groupby(keys).transform("sum")
    )
    return df


def gene_fitness(
    df: pd.DataFrame,
    min_strains: int = MIN_STRAINS,
    max_weight: float = MAX_WEIGHT,
) -> Tuple[pd.DataFrame, CountTotals, Optional[float]]:
    """
    Strain fitness and weighted gene fitness for every observation.

    Parameters
    ----------
    df : DataFrame from ``apply_reference`` (non-reference rows with n0).
    min_strains : int
        Genes with at least this many strains get a gene-specific pseudocount
        (``EstimatedFactor``); the rest use the dataset ratio (``FixedFactor``).
    max_weight : float
        Ceiling on strain weights.

    Returns
    -------
    fitness : DataFrame with ``FITNESS_COLUMNS``.
    totals : CountTotals used for the pseudocounts.
    center : float or None
        Median preliminary gene fitness, None if no gene reaches
        ``min_strains``.
    """
    df = df.copy()
    df["Weight"] = strain_weights(df["Counts"], df["n0"], max_weight=max_weight)
    # Counted over all conditions, not per condition
    df["Strains_per_gene"] = df.groupby("locusId")["barcode"].transform("nunique")

    totals = CountTotals.from_table(df)
    logger.info(
        "Sum_nafter=%g Sum_n0=%g ratio=%g",
        totals.sum_nafter, totals.sum_n0, totals.ratio,
    )

    regime = df["Strains_per_gene"].map(lambda n: select_model(n, min_strains))
    few = df.loc[regime == "fixed"]
    many = df.loc[regime == "estimated"]

    parts = []
    if not few.empty:
        model = FixedFactor(totals)
        parts.append(_weighted_gene_fitness(few, model.pseudocounts(few)))

    center = None
    if not many.empty:
        center = preliminary_center(many)
        logger.info("Preliminary gene fitness median: %g", center)
        model = EstimatedFactor(totals, center)
        parts.append(_weighted_gene_fitness(many, model.pseudocounts(many)))

    fitness = pd.concat(parts, ignore_index=True)[FITNESS_COLUMNS]
    return fitness, totals, center
