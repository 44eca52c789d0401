"""
barseq_fitness: strain and gene fitness from pooled barcoded mutant sequencing.

Public API
----------
calculate_fitness(genes, counts, metadata, ...)
    Full pipeline: join → reference filter → fitness → normalization → t.

join_tables(genes, counts, metadata, locus_col="locusId")
    Long per-(strain, sample) table with gene and sample annotation.

reference_counts(long, min_strain_n0=3, min_gene_n0=30)
    Time-zero reads per strain and condition after coverage filters.

gene_fitness(df, min_strains=3)
    Strain fitness and inverse-variance weighted gene fitness.

normalize_positions(fitness, genes, half_width=125)
    Local median and scaffold mode centering of gene fitness.

t_statistics(df, calibration_genes, vt)
    Noise model, t-like statistic and significance calls.

write_tables(strains, genes, output_dir, project)
    Save the gzipped strain and gene fitness tables.
"""

from .errors import (
    FitnessError,
    InputSchemaError,
    InsufficientCoverageError,
    UndefinedStatisticError,
    InconsistentGeneValueError,
)
from .joining import join_tables
from .filtering import reference_counts, apply_reference
from .fitness import (
    strain_variance,
    strain_fitness,
    strain_weights,
    gene_fitness,
    CountTotals,
    FixedFactor,
    EstimatedFactor,
    MAX_WEIGHT,
)
from .normalization import normalize_positions, density_mode, bw_nrd0
from .significance import half_gene_differences, prior_variance, t_statistics
from .output import strain_table, gene_table, write_tables
from .pipeline import calculate_fitness
from .io import read_table, read_inputs

__all__ = [
    "calculate_fitness",
    "join_tables",
    "reference_counts",
    "apply_reference",
    "strain_variance",
    "strain_fitness",
    "strain_weights",
    "gene_fitness",
    "CountTotals",
    "FixedFactor",
    "EstimatedFactor",
    "MAX_WEIGHT",
    "normalize_positions",
    "density_mode",
    "bw_nrd0",
    "half_gene_differences",
    "prior_variance",
    "t_statistics",
    "strain_table",
    "gene_table",
    "write_tables",
    "read_table",
    "read_inputs",
    "FitnessError",
    "InputSchemaError",
    "InsufficientCoverageError",
    "UndefinedStatisticError",
    "InconsistentGeneValueError",
]

__version__ = "0.1.0"
