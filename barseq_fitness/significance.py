"""
Noise model and significance calls for normalized gene fitness.
"""

from __future__ import annotations

import logging
from typing import Tuple

import numpy as np
import pandas as pd

from .errors import UndefinedStatisticError
from .fitness import strain_variance

logger = logging.getLogger(__name__)


MIN_SIDE_N0 = 15
T_FLOOR = 0.1
T_THRESHOLD = 4

# Converts a median absolute difference into a standard deviation
_MAD_SCALE = 2 * 0.674


def half_gene_differences(
    reference: pd.DataFrame,
    genes: pd.DataFrame,
    fitness: pd.DataFrame,
    min_side_n0: int = MIN_SIDE_N0,
) -> pd.DataFrame:
    """
    Absolute difference between the median strain fitness of the two halves
    of each well covered gene.

    A gene qualifies in a condition when the strains on each side of its
    middle carry at least ``min_side_n0`` reference reads. The side medians
    pool the (un-normalized) strain fitness over every sample of the
    qualifying conditions.

    Parameters
    ----------
    reference : DataFrame from ``reference_counts``.
    genes : DataFrame with locusId, scaffold, begin, end.
    fitness : DataFrame from ``gene_fitness``.
    min_side_n0 : int
        Minimum reference reads per half gene.

    Returns
    -------
    DataFrame indexed by locusId with columns Left, Right, Abs_diff.
    """
    middles = genes[["locusId", "scaffold", "begin", "end"]].drop_duplicates("locusId")
    middles = middles.assign(Middle=(middles["begin"] + middles["end"]) / 2)

    side = reference.merge(middles[["locusId", "scaffold", "Middle"]], on=["locusId", "scaffold"])
    side["Side"] = np.where(side["pos"] < side["Middle"], "Left", "Right")
    side = side[["barcode", "locusId", "Condition", "Side", "n0"]].drop_duplicates()

    side_n0 = side.groupby(["locusId", "Condition", "Side"])["n0"].transform("sum")
    side = side.loc[side_n0 >= min_side_n0]
    n_sides = side.groupby(["locusId", "Condition"])["Side"].transform("nunique")
    side = side.loc[n_sides == 2, ["barcode", "locusId", "Condition", "Side"]]

    merged = side.merge(
        fitness[["barcode", "locusId", "Condition", "Strain_fitness"]],
        on=["barcode", "locusId", "Condition"],
    )
    if merged.empty:
        return pd.DataFrame(columns=["Left", "Right", "Abs_diff"], dtype=float)

    medians = (
        merged.groupby(["locusId", "Side"])["Strain_fitness"]
        .median()
        .unstack("Side")
        .reindex(columns=["Left", "Right"])
    )
    medians["Abs_diff"] = (medians["Right"] - medians["Left"]).abs()
    return medians.dropna(subset=["Abs_diff"])


def prior_variance(abs_diff) -> Tuple[float, float]:
    """
    Typical gene variance from half-gene differences.

    Returns
    -------
    mad12 : float
        Median absolute difference between gene halves.
    vt : float
        ``mad12**2 / (2 * 0.674)**2``.
    """
    abs_diff = np.asarray(abs_diff, dtype=float)
    if abs_diff.size == 0:
        raise UndefinedStatisticError(
            f"No gene has {MIN_SIDE_N0} reference reads on both halves; "
            "cannot estimate the prior gene variance"
        )
    mad12 = float(np.median(abs_diff))
    return mad12, mad12 ** 2 / _MAD_SCALE ** 2


def t_statistics(
    df: pd.DataFrame,
    calibration_genes,
    vt: float,
    floor: float = T_FLOOR,
    threshold: float = T_THRESHOLD,
) -> pd.DataFrame:
    """
    t-like statistic and significance call for every strain row.

    Parameters
    ----------
    df : DataFrame
        Strain-level fitness with 'Norm_fg' attached.
    calibration_genes : iterable
        locusIds used to estimate ``vt``; their median naive variance per
        sample scales the prior.
    vt : float
        Prior gene variance from ``prior_variance``.
    floor : float
        Added in quadrature to the variance.
    threshold : float
        ``|t|`` above which a gene is called significant.

    Returns
    -------
    ``df`` with Vn, Median_Vn, Vg, Vi, Ve, t and Significant added.
    """
    df = df.copy()
    df["Vn"] = strain_variance(df["Counts"], df["n0"])

    calibration = df.loc[df["locusId"].isin(set(calibration_genes))]
    median_vn = calibration.groupby("ID")["Vn"].median().rename("Median_Vn")

    dropped = sorted(set(df["ID"]) - set(median_vn.index))
    if dropped:
        logger.warning("No calibration gene in samples %s; excluding them", dropped)
    df = df.merge(median_vn.reset_index(), on="ID", how="inner")

    keys = [df["ID"], df["locusId"]]
    df["Vg"] = vt * df["Vn"] / df["Median_Vn"]
    df["Vi"] = df["Weight"] * (df["Strain_fitness"] - df["Norm_fg"]) ** 2
    df["Ve"] = (
        df["Vi"].groupby(keys).transform("sum") / df["Weight"].groupby(keys).transform("sum")
        + df["Vg"]
    ) / df["Strains_per_gene"]

    # One variance per gene and sample: the largest Ve or Vn among its strains
    var = np.maximum(df["Ve"], df["Vn"]).groupby(keys).transform("max")
    df["t"] = df["Norm_fg"] / np.sqrt(floor ** 2 + var)

    bad = ~np.isfinite(df["t"])
    if bad.any():
        logger.warning("Excluding %d rows with undefined t", int(bad.sum()))
        df = df.loc[~bad].copy()

    df["Significant"] = (df["t"].abs() > threshold).astype(int)
    return df.reset_index(drop=True)
