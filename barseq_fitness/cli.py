"""
Command-line interface for barseq_fitness.

Usage:
    barseq-fitness --genes proj.poolfile.tab --counts proj.poolcount \
        --metadata proj.metadata.tab --project proj --output-dir results/ [options]
"""

from __future__ import annotations

import argparse
import logging
import sys

from .errors import FitnessError
from .filtering import MIN_GENE_N0, MIN_STRAIN_N0
from .fitness import MIN_STRAINS
from .io import read_inputs
from .joining import CENTRAL_RANGE
from .normalization import HALF_WINDOW
from .output import write_tables
from .pipeline import calculate_fitness
from .significance import MIN_SIDE_N0, T_FLOOR, T_THRESHOLD


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="barseq-fitness",
        description="Strain and gene fitness from pooled barcoded mutant counts",
    )
    parser.add_argument("--genes",    required=True, help="Gene table or pool file (tab separated)")
    parser.add_argument("--counts",   required=True, help="Barcode count table, one column per sample")
    parser.add_argument("--metadata", required=True, help="Sample metadata table")
    parser.add_argument("--project",  required=True, help="Prefix of the output file names")
    parser.add_argument("--output-dir", default="fitness_results",
                        help="Directory to write the fitness tables (default: fitness_results)")
    parser.add_argument("--locus-col", default="locusId",
                        help="Gene identifier column of the gene table (default: locusId)")
    parser.add_argument("--no-central-range", action="store_true",
                        help="Keep insertions anywhere in a gene when matching by position")
    parser.add_argument("--min-strain-n0", type=int,   default=MIN_STRAIN_N0)
    parser.add_argument("--min-gene-n0",   type=int,   default=MIN_GENE_N0)
    parser.add_argument("--min-strains",   type=int,   default=MIN_STRAINS)
    parser.add_argument("--half-window",   type=int,   default=HALF_WINDOW)
    parser.add_argument("--min-side-n0",   type=int,   default=MIN_SIDE_N0)
    parser.add_argument("--t-floor",       type=float, default=T_FLOOR)
    parser.add_argument("--t-threshold",   type=float, default=T_THRESHOLD)
    parser.add_argument("--linear-scaffold", action="append", default=[],
                        help="Scaffold whose gene windows do not wrap around (repeatable)")
    parser.add_argument("--verbose", action="store_true", help="Log pipeline progress")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        genes, counts, metadata = read_inputs(
            args.genes, args.counts, args.metadata, locus_col=args.locus_col,
        )
        strains, gene_level, summary = calculate_fitness(
            genes, counts, metadata,
            locus_col=args.locus_col,
            central_range=None if args.no_central_range else CENTRAL_RANGE,
            min_strain_n0=args.min_strain_n0,
            min_gene_n0=args.min_gene_n0,
            min_strains=args.min_strains,
            half_window=args.half_window,
            linear_scaffolds=args.linear_scaffold,
            min_side_n0=args.min_side_n0,
            t_floor=args.t_floor,
            t_threshold=args.t_threshold,
        )
    except FitnessError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    strain_path, gene_path = write_tables(strains, gene_level, args.output_dir, args.project)
    print(f"Strain fitness saved to {strain_path}")
    print(f"Gene fitness saved to {gene_path}")
    print(f"  Strains:           {strains['barcode'].nunique()}")
    print(f"  Genes:             {gene_level['locusId'].nunique()}")
    print(f"  Samples:           {gene_level['ID'].nunique()}")
    print(f"  Significant calls: {int(gene_level['Significant'].sum())}")
    print(f"  mad12 = {summary['mad12']:.4f}, Vt = {summary['Vt']:.4g}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
