"""
Exception types raised by the fitness pipeline.
"""


class FitnessError(ValueError):
    """Base class for all pipeline errors."""


class InputSchemaError(FitnessError):
    """An input table is missing a required column."""


class InsufficientCoverageError(FitnessError):
    """Reference filtering removed every strain in the dataset."""


class UndefinedStatisticError(FitnessError):
    """A median, density or variance was requested on an empty or degenerate set."""


class InconsistentGeneValueError(FitnessError):
    """Strains of one gene and sample disagree on a gene-level value."""


def check_columns(df, required_columns, table="table"):
    """
    Raise InputSchemaError listing every required column missing from ``df``.
    """
    missing = [c for c in required_columns if c not in df.columns]
    if missing:
        err = f"Not all required columns seen in {table}. Missing columns:\n"
        for c in missing:
            err += f"    {c}\n"
        raise InputSchemaError(err)
