"""
Final strain-level and gene-level fitness tables.
"""

from __future__ import annotations

import os
from typing import Tuple

import numpy as np
import pandas as pd

from .errors import InconsistentGeneValueError


STRAIN_COLUMNS = [
    "barcode", "locusId", "scaffold", "Date", "Time", "ID", "Condition",
    "Replicate", "Counts", "n0", "Strains_per_gene", "Strain_fitness",
    "Norm_fg", "t", "Significant",
]

_GENE_KEYS = [
    "locusId", "scaffold", "Date", "Time", "ID", "Condition", "Replicate",
    "Strains_per_gene",
]
_GENE_VALUES = ["Norm_fg", "t", "Significant"]

GENE_COLUMNS = _GENE_KEYS + ["Counts", "n0"] + _GENE_VALUES + ["log2FC"]


def strain_table(df: pd.DataFrame) -> pd.DataFrame:
    """One row per (strain, sample) in ``STRAIN_COLUMNS`` order."""
    out = df[STRAIN_COLUMNS].sort_values(["locusId", "barcode", "ID"], kind="mergesort")
    return out.reset_index(drop=True)


def gene_table(strains: pd.DataFrame) -> pd.DataFrame:
    """
    Collapse the strain table to one row per (gene, sample).

    Counts and n0 are summed over strains, Norm_fg, t and Significant must be
    shared by all strains of a gene and sample, and
    ``log2FC = log2(Counts / n0)`` on the sums.

    Raises
    ------
    InconsistentGeneValueError
        If a gene-level value differs between strains of one gene and sample.
    """
    grouped = strains.groupby(_GENE_KEYS, sort=True, dropna=False)

    n_values = grouped[_GENE_VALUES].nunique(dropna=False)
    conflicting = n_values.loc[(n_values > 1).any(axis=1)]
    if not conflicting.empty:
        raise InconsistentGeneValueError(
            f"{len(conflicting)} gene/sample groups have conflicting values, e.g. "
            f"{conflicting.index[0]}"
        )

    genes = grouped.agg(
        Counts=("Counts", "sum"),
        n0=("n0", "sum"),
        Norm_fg=("Norm_fg", "first"),
        t=("t", "first"),
        Significant=("Significant", "first"),
    ).reset_index()

    with np.errstate(divide="ignore"):
        genes["log2FC"] = np.log2(genes["Counts"] / genes["n0"])

    return genes[GENE_COLUMNS]


def write_tables(
    strains: pd.DataFrame,
    genes: pd.DataFrame,
    output_dir: str,
    project: str,
) -> Tuple[str, str]:
    """
    Write ``<project>.fitness.tab.gz`` and ``<project>.gene_fitness.tab.gz``.

    The gzip header time is fixed so identical tables give identical files.
    """
    os.makedirs(output_dir, exist_ok=True)
    compression = {"method": "gzip", "mtime": 0}

    strain_path = os.path.join(output_dir, f"{project}.fitness.tab.gz")
    gene_path = os.path.join(output_dir, f"{project}.gene_fitness.tab.gz")

    strains.to_csv(strain_path, sep="\t", index=False, compression=compression)
    genes.to_csv(gene_path, sep="\t", index=False, compression=compression)

    return strain_path, gene_path
