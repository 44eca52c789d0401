"""
Main fitness pipeline for pooled barcoded mutant (BarSeq) experiments.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional, Sequence, Tuple

import pandas as pd

from .filtering import MIN_GENE_N0, MIN_STRAIN_N0, apply_reference, reference_counts
from .fitness import MAX_WEIGHT, MIN_STRAINS, gene_fitness
from .joining import CENTRAL_RANGE, join_tables, prepare_genes
from .normalization import HALF_WINDOW, normalize_positions
from .output import gene_table, strain_table
from .significance import (
    MIN_SIDE_N0,
    T_FLOOR,
    T_THRESHOLD,
    half_gene_differences,
    prior_variance,
    t_statistics,
)

logger = logging.getLogger(__name__)


def calculate_fitness(
    genes: pd.DataFrame,
    counts: pd.DataFrame,
    metadata: pd.DataFrame,
    locus_col: str = "locusId",
    central_range: Optional[Sequence[float]] = CENTRAL_RANGE,
    min_strain_n0: int = MIN_STRAIN_N0,
    min_gene_n0: int = MIN_GENE_N0,
    min_strains: int = MIN_STRAINS,
    max_weight: float = MAX_WEIGHT,
    half_window: int = HALF_WINDOW,
    linear_scaffolds: Iterable = (),
    min_side_n0: int = MIN_SIDE_N0,
    t_floor: float = T_FLOOR,
    t_threshold: float = T_THRESHOLD,
) -> Tuple[pd.DataFrame, pd.DataFrame, Dict[str, Any]]:
    """
    Full strain and gene fitness pipeline.

    Joins the inputs, keeps strains and genes with enough time-zero reads,
    computes strain fitness and weighted gene fitness, removes positional and
    scaffold-wide bias, and calls significance with a t-like statistic.

    Parameters
    ----------
    genes : DataFrame
        Gene annotation or pool file (see ``join_tables``).
    counts : DataFrame
        Wide barcode count table, one column per sample Filename.
    metadata : DataFrame
        Sample table with 'Filename', 'Date', 'Time', 'ID', 'Condition',
        'Replicate' and boolean 'Reference' (time-zero sample of its
        condition).
    locus_col : str
        Gene identifier column of ``genes``.
    central_range : (float, float) or None
        Fractional gene span for insertions when matching strains by position.
    min_strain_n0 : int
        Minimum reference reads per strain and condition.
    min_gene_n0 : int
        Minimum reference reads per gene and condition.
    min_strains : int
        Strains per gene needed for a gene-specific pseudocount.
    max_weight : float
        Ceiling on strain weights.
    half_window : int
        Genes on each side of a gene in the local median window.
    linear_scaffolds : iterable
        Scaffolds whose gene windows do not wrap around.
    min_side_n0 : int
        Minimum reference reads per gene half for noise calibration.
    t_floor : float
        Variance floor (added in quadrature) of the t statistic.
    t_threshold : float
        ``|t|`` above which a gene is significant.

    Returns
    -------
    strains : DataFrame
        Strain-level table, columns ``output.STRAIN_COLUMNS``.
    genes : DataFrame
        Gene-level table, columns ``output.GENE_COLUMNS``.
    summary : dict
        Dataset-wide constants and diagnostics: 'n_unmatched_strains',
        'n_reference_strains', 'sum_nafter', 'sum_n0', 'prelim_center',
        'max_weight', 'n_calibration_genes', 'mad12', 'Vt'.
    """
    # --- 1. Join inputs ---
    long, n_unmatched = join_tables(
        genes, counts, metadata,
        locus_col=locus_col, central_range=central_range,
    )
    gene_info = prepare_genes(genes, locus_col=locus_col)

    # --- 2. Reference coverage ---
    reference = reference_counts(long, min_strain_n0=min_strain_n0, min_gene_n0=min_gene_n0)
    working = apply_reference(long, reference)

    # --- 3. Strain and gene fitness ---
    fitness, totals, center = gene_fitness(
        working, min_strains=min_strains, max_weight=max_weight,
    )

    # --- 4. Positional normalization ---
    normalized = normalize_positions(
        fitness, gene_info,
        half_width=half_window, linear_scaffolds=linear_scaffolds,
    )
    fitness = fitness.merge(
        normalized[["locusId", "ID", "scaffold", "Norm_fg"]],
        on=["locusId", "ID"], how="inner",
    )

    # --- 5. Noise model and t statistic ---
    halves = half_gene_differences(reference, gene_info, fitness, min_side_n0=min_side_n0)
    mad12, vt = prior_variance(halves["Abs_diff"])
    logger.info("mad12=%g Vt=%g from %d genes", mad12, vt, len(halves))

    tested = t_statistics(fitness, halves.index, vt, floor=t_floor, threshold=t_threshold)

    # --- 6. Output tables ---
    strains = strain_table(tested)
    gene_level = gene_table(strains)

    summary = {
        "n_unmatched_strains": n_unmatched,
        "n_reference_strains": int(reference["barcode"].nunique()),
        "sum_nafter": totals.sum_nafter,
        "sum_n0": totals.sum_n0,
        "prelim_center": center,
        "max_weight": max_weight,
        "n_calibration_genes": len(halves),
        "mad12": mad12,
        "Vt": vt,
    }
    return strains, gene_level, summary
