"""
Reading input tables.
"""

import pandas as pd

# Identifier columns that must not be parsed as numbers
_STRING_COLUMNS = ["barcode", "scaffold", "locusId", "Filename", "ID", "Condition"]


def read_table(source, sep=None, string_columns=()):
    """
    Read a tab-separated table from a path, or copy a DataFrame.

    Files ending in .csv (optionally .gz compressed) are read as
    comma-separated. Identifier columns (barcode, scaffold, locusId, Filename,
    ID, Condition and any ``string_columns``) are kept as strings.
    """
    if isinstance(source, pd.DataFrame):
        return source.copy()
    if not isinstance(source, str):
        raise TypeError("`source` must be a file path (str) or pandas DataFrame.")

    if sep is None:
        stem = source[:-3] if source.endswith(".gz") else source
        sep = "," if stem.lower().endswith(".csv") else "\t"

    dtype = {c: str for c in _STRING_COLUMNS + list(string_columns)}
    try:
        return pd.read_csv(source, sep=sep, dtype=dtype)
    except FileNotFoundError:
        raise ValueError(f"File not found at path: {source}")


def read_inputs(genes, counts, metadata, locus_col="locusId"):
    """Read the gene, count and metadata tables."""
    return (
        read_table(genes, string_columns=[locus_col]),
        read_table(counts),
        read_table(metadata),
    )
