"""
Join gene annotation, barcode counts and sample metadata into one long table.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .errors import InputSchemaError, check_columns

logger = logging.getLogger(__name__)


GENE_COLUMNS = ["scaffold", "begin", "end", "gene_strand"]
COUNT_COLUMNS = ["barcode", "scaffold", "pos"]
META_COLUMNS = ["Filename", "Date", "Time", "ID", "Condition", "Replicate", "Reference"]

CENTRAL_RANGE = (0.1, 0.9)

_TRUE_STRINGS = {"true", "t", "yes", "1"}
_FALSE_STRINGS = {"false", "f", "no", "0", "", "nan", "na"}


def as_bool(values: pd.Series) -> pd.Series:
    """
    Coerce a column of TRUE/FALSE flags (as read from a table) to bool.
    """
    if pd.api.types.is_bool_dtype(values):
        return values.astype(bool)
    if pd.api.types.is_numeric_dtype(values):
        return values.fillna(0).astype(bool)

    text = values.astype(str).str.strip().str.lower()
    unknown = ~text.isin(_TRUE_STRINGS | _FALSE_STRINGS)
    if unknown.any():
        bad = sorted(text[unknown].unique())[:5]
        raise InputSchemaError(f"Column '{values.name}' is not boolean: {bad}")
    return text.isin(_TRUE_STRINGS)


def prepare_genes(genes: pd.DataFrame, locus_col: str = "locusId") -> pd.DataFrame:
    """
    Validate the gene table, rename ``locus_col`` to ``locusId`` and keep only
    rows flagged ``central`` when that column is present.
    """
    check_columns(genes, [locus_col] + GENE_COLUMNS, table="gene table")

    genes = genes.copy()
    if locus_col != "locusId":
        genes = genes.drop(columns="locusId", errors="ignore")
        genes = genes.rename(columns={locus_col: "locusId"})

    genes = genes.loc[genes["locusId"].notna()]
    if "central" in genes.columns:
        genes = genes.loc[as_bool(genes["central"])]

    return genes


def _assign_by_barcode(strains: pd.DataFrame, genes: pd.DataFrame) -> pd.DataFrame:
    pool = genes[["barcode", "scaffold", "locusId", "begin", "end", "gene_strand"]]
    pool = pool.drop_duplicates(["barcode", "scaffold"])
    return strains.merge(pool, on=["barcode", "scaffold"], how="inner")


def _assign_by_position(
    strains: pd.DataFrame,
    genes: pd.DataFrame,
    central_range: Optional[Sequence[float]],
) -> pd.DataFrame:
    """
    Attach each strain to the gene containing its insertion site. Where genes
    overlap, the containing gene with the closest ``begin`` wins.
    """
    pieces = []
    by_scaffold = dict(tuple(genes.groupby("scaffold", sort=False)))

    for scaffold, st in strains.groupby("scaffold", sort=False):
        if scaffold not in by_scaffold:
            continue
        sg = by_scaffold[scaffold].sort_values(["begin", "locusId"], kind="mergesort")
        begins = sg["begin"].to_numpy()
        ends = sg["end"].to_numpy()
        reach = np.maximum.accumulate(ends)

        pos = st["pos"].to_numpy()
        idx = np.searchsorted(begins, pos, side="right") - 1
        hit = np.full(len(pos), -1)

        # Walk back over earlier genes only while one of them can still reach pos
        pending = idx >= 0
        pending[pending] = reach[idx[pending]] >= pos[pending]
        while pending.any():
            rows = np.flatnonzero(pending)
            inside = ends[idx[rows]] >= pos[rows]
            hit[rows[inside]] = idx[rows[inside]]
            pending[rows[inside]] = False
            idx[rows] -= 1
            pending &= idx >= 0
            pending[pending] = reach[idx[pending]] >= pos[pending]

        matched = hit >= 0
        if not matched.any():
            continue
        gene_cols = sg[["locusId", "begin", "end", "gene_strand"]].iloc[hit[matched]]
        piece = st.loc[matched].reset_index(drop=True)
        piece = pd.concat([piece, gene_cols.reset_index(drop=True)], axis=1)
        pieces.append(piece)

    if not pieces:
        return strains.iloc[0:0].assign(locusId=[], begin=[], end=[], gene_strand=[])
    joined = pd.concat(pieces, ignore_index=True)

    if central_range is not None:
        lo, hi = central_range
        length = (joined["end"] - joined["begin"]).astype(float)
        frac = (joined["pos"] - joined["begin"]) / length.where(length > 0)
        frac = frac.where(joined["gene_strand"] != "-", 1 - frac)
        joined = joined.loc[(frac >= lo) & (frac <= hi)].reset_index(drop=True)

    return joined


def join_tables(
    genes: pd.DataFrame,
    counts: pd.DataFrame,
    metadata: pd.DataFrame,
    locus_col: str = "locusId",
    central_range: Optional[Sequence[float]] = CENTRAL_RANGE,
) -> Tuple[pd.DataFrame, int]:
    """
    Build the long per-(strain, sample) table the pipeline runs on.

    Parameters
    ----------
    genes : DataFrame
        Gene annotation with ``locus_col``, 'scaffold', 'begin', 'end',
        'gene_strand' and optionally 'central' and 'barcode'. With a 'barcode'
        column the table is treated as a pool file and strains are matched by
        (barcode, scaffold); otherwise strains are matched by position.
    counts : DataFrame
        Wide count table: 'barcode', 'scaffold', 'pos' and one column per
        sample Filename.
    metadata : DataFrame
        One row per sample: 'Filename', 'Date', 'Time', 'ID', 'Condition',
        'Replicate', 'Reference'.
    locus_col : str
        Column of ``genes`` holding the gene identifier.
    central_range : (float, float) or None
        Fractional gene span insertions must fall in, applied when matching by
        position and no 'central' column is given.

    Returns
    -------
    long : DataFrame
        Columns: barcode, scaffold, pos, locusId, begin, end, gene_strand,
        Filename, Counts, Date, Time, ID, Condition, Replicate, Reference.
    n_unmatched : int
        Number of strains dropped because no gene holds them.
    """
    check_columns(counts, COUNT_COLUMNS, table="count table")
    check_columns(metadata, META_COLUMNS, table="metadata table")

    genes = prepare_genes(genes, locus_col=locus_col)

    meta = metadata[META_COLUMNS].copy()
    meta["Filename"] = meta["Filename"].astype(str)
    meta["Reference"] = as_bool(meta["Reference"])

    counts = counts.rename(columns=str)
    samples = list(meta["Filename"])
    missing = [f for f in samples if f not in counts.columns]
    if missing:
        err = "Not all metadata samples have a column in count table. Missing columns:\n"
        for f in missing:
            err += f"    {f}\n"
        raise InputSchemaError(err)

    strains = counts[COUNT_COLUMNS + samples]
    if "barcode" in genes.columns:
        joined = _assign_by_barcode(strains, genes)
    else:
        joined = _assign_by_position(
            strains, genes,
            central_range=None if "central" in genes.columns else central_range,
        )

    n_unmatched = int(strains["barcode"].nunique() - joined["barcode"].nunique())
    if n_unmatched:
        logger.info("Dropped %d strains outside central gene regions", n_unmatched)

    id_cols = COUNT_COLUMNS + ["locusId", "begin", "end", "gene_strand"]
    long = joined.melt(
        id_vars=id_cols, value_vars=samples,
        var_name="Filename", value_name="Counts",
    )
    long = long.merge(meta, on="Filename", how="inner")

    return long, n_unmatched
