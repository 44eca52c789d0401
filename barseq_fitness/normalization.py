"""
Positional normalization of gene fitness.

Gene fitness is corrected in two steps, per sample:

1. the median fitness of the surrounding genes (a window of ``2 * half_width
   + 1`` genes ordered along the scaffold, wrapping around circular
   scaffolds) is subtracted;
2. every scaffold is shifted so that the mode of the kernel density of its
   locally normalized values sits at zero.

The density bandwidth follows Silverman's rule of thumb (``bw_nrd0``) and
the density is evaluated on a fixed 512-point grid, so the mode is
reproducible.
"""

from __future__ import annotations

import logging
from typing import Iterable

import numpy as np
import pandas as pd
from scipy import stats

from .errors import UndefinedStatisticError

logger = logging.getLogger(__name__)


HALF_WINDOW = 125
DENSITY_POINTS = 512
DENSITY_CUT = 3


def gene_index(genes: pd.DataFrame) -> pd.DataFrame:
    """
    Order distinct genes by their middle within each scaffold.

    Returns
    -------
    DataFrame with columns locusId, scaffold, Middle, Index (1-based).
    """
    idx = genes[["locusId", "scaffold", "begin", "end"]].drop_duplicates("locusId")
    idx = idx.assign(Middle=(idx["begin"] + idx["end"]) / 2)
    idx = idx.sort_values(["scaffold", "Middle", "locusId"], kind="mergesort")
    idx["Index"] = idx.groupby("scaffold").cumcount() + 1
    return idx[["locusId", "scaffold", "Middle", "Index"]].reset_index(drop=True)


def window_indices(index, k: int, half_width: int = HALF_WINDOW, circular: bool = True):
    """
    Positions in the window around each of ``index``.

    Returns an integer array of shape (len(index), 2 * half_width + 1). Out of
    range positions are wrapped once by ``k`` on circular scaffolds; anything
    still outside ``1..k`` is set to 0.
    """
    index = np.asarray(index, dtype=int)
    offsets = np.arange(-half_width, half_width + 1)
    win = index[:, None] + offsets[None, :]

    if circular:
        win = np.where(win < 1, win + k, win)
        win = np.where(win > k, win - k, win)

    win[(win < 1) | (win > k)] = 0
    return win


def local_medians(
    fitness: pd.DataFrame,
    index: pd.DataFrame,
    half_width: int = HALF_WINDOW,
    linear_scaffolds: Iterable = (),
) -> pd.DataFrame:
    """
    Median ``Gene_fitness`` of the genes in each gene's window, per sample.

    Parameters
    ----------
    fitness : DataFrame with one row per (locusId, ID) and 'Gene_fitness'.
    index : DataFrame from ``gene_index``.
    half_width : int
        Genes on each side of the focal gene.
    linear_scaffolds : iterable
        Scaffolds whose ends do not wrap around.

    Returns
    -------
    ``fitness`` joined to ``index`` with an added 'LocalMedian' column.
    """
    linear = set(linear_scaffolds)
    sizes = index.groupby("scaffold")["Index"].max()

    df = fitness.merge(index, on="locusId", how="inner")
    df = df.sort_values(["scaffold", "ID", "Index"], kind="mergesort").reset_index(drop=True)
    df["LocalMedian"] = np.nan

    for (scaffold, _), grp in df.groupby(["scaffold", "ID"], sort=False):
        k = int(sizes[scaffold])

        # Slot 0 stays NaN and absorbs positions outside the scaffold
        values = np.full(k + 1, np.nan)
        values[grp["Index"].to_numpy()] = grp["Gene_fitness"].to_numpy()

        win = window_indices(
            grp["Index"].to_numpy(), k,
            half_width=half_width, circular=scaffold not in linear,
        )
        df.loc[grp.index, "LocalMedian"] = np.nanmedian(values[win], axis=1)

    return df


def bw_nrd0(x) -> float:
    """
    Silverman's rule of thumb bandwidth, ``0.9 * min(sd, IQR / 1.34) * n^-0.2``.

    Falls back to the standard deviation, then ``|x[0]|``, then 1 when the
    spread is zero.
    """
    x = np.asarray(x, dtype=float)
    if x.size < 2:
        raise UndefinedStatisticError("Need at least 2 values to select a bandwidth")

    hi = np.std(x, ddof=1)
    q75, q25 = np.percentile(x, [75, 25])
    lo = min(hi, (q75 - q25) / 1.34)
    if not lo:
        lo = hi or abs(x[0]) or 1.0
    return 0.9 * lo * x.size ** -0.2


def density_mode(x, n_points: int = DENSITY_POINTS, cut: float = DENSITY_CUT) -> float:
    """
    Location of the maximum of a Gaussian kernel density estimate of ``x``.

    The density is evaluated on ``n_points`` evenly spaced points from
    ``min(x) - cut * bw`` to ``max(x) + cut * bw``; the first maximum wins.
    With fewer than two distinct values the mode is that value.
    """
    x = np.asarray(x, dtype=float)
    x = x[np.isfinite(x)]
    if x.size == 0:
        raise UndefinedStatisticError("Cannot estimate the mode of an empty set")
    if np.unique(x).size < 2:
        return float(x[0])

    bw = bw_nrd0(x)
    kde = stats.gaussian_kde(x, bw_method=bw / np.std(x, ddof=1))
    grid = np.linspace(x.min() - cut * bw, x.max() + cut * bw, n_points)
    density = kde(grid)
    return float(grid[np.argmax(density)])


def normalize_positions(
    fitness: pd.DataFrame,
    genes: pd.DataFrame,
    half_width: int = HALF_WINDOW,
    linear_scaffolds: Iterable = (),
) -> pd.DataFrame:
    """
    Remove positional and scaffold-wide bias from gene fitness.

    Parameters
    ----------
    fitness : DataFrame
        Strain-level table from ``gene_fitness``; one 'Gene_fitness' per
        (locusId, ID).
    genes : DataFrame
        Gene table (locusId, scaffold, begin, end).
    half_width : int
        Genes on each side of the focal gene in the local window.
    linear_scaffolds : iterable
        Scaffolds treated as linear (no wrap around).

    Returns
    -------
    DataFrame, one row per (locusId, ID): locusId, ID, scaffold, Index,
    Gene_fitness, LocalMedian, Norm_fg_0, Mode, Norm_fg.
    """
    per_gene = fitness[["locusId", "ID", "Gene_fitness"]].drop_duplicates(["locusId", "ID"])
    index = gene_index(genes)

    df = local_medians(per_gene, index, half_width=half_width, linear_scaffolds=linear_scaffolds)
    df["Norm_fg_0"] = df["Gene_fitness"] - df["LocalMedian"]

    df["Mode"] = df.groupby(["scaffold", "ID"])["Norm_fg_0"].transform(density_mode)
    df["Norm_fg"] = df["Norm_fg_0"] - df["Mode"]

    return df[[
        "locusId", "ID", "scaffold", "Index", "Gene_fitness",
        "LocalMedian", "Norm_fg_0", "Mode", "Norm_fg",
    ]]
