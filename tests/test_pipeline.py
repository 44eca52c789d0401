"""
End-to-end tests for pipeline.py: calculate_fitness.
"""

import numpy as np
import pandas as pd
import pytest

from barseq_fitness import calculate_fitness
from barseq_fitness.errors import InputSchemaError, InsufficientCoverageError
from barseq_fitness.output import GENE_COLUMNS, STRAIN_COLUMNS


def _make_dataset(genes_spec, intergenic=()):
    """
    Build gene, count and metadata tables for one scaffold, one condition,
    one time-zero sample ('T0') and one treated sample ('S1').

    genes_spec : list of (locusId, begin, end, [(pos, n0, n_after), ...])
    intergenic : positions of strains outside every gene
    """
    gene_rows, count_rows = [], []
    for locus, begin, end, strains in genes_spec:
        gene_rows.append({
            "locusId": locus, "scaffold": "chr",
            "begin": begin, "end": end, "gene_strand": "+",
        })
        for pos, n0, n_after in strains:
            count_rows.append({"pos": pos, "T0": n0, "S1": n_after})
    for pos in intergenic:
        count_rows.append({"pos": pos, "T0": 50, "S1": 50})

    counts = pd.DataFrame(count_rows)
    counts.insert(0, "scaffold", "chr")
    counts.insert(0, "barcode", [f"bc{i:03d}" for i in range(len(counts))])

    meta = pd.DataFrame({
        "Filename":  ["T0", "S1"],
        "Date":      ["2024-01-01", "2024-01-01"],
        "Time":      [0, 24],
        "ID":        ["t0", "s1"],
        "Condition": ["LB", "LB"],
        "Replicate": [1, 1],
        "Reference": [True, False],
    })
    return pd.DataFrame(gene_rows), counts, meta


def _two_gene_dataset(intergenic=()):
    """Gene A doubles, gene B is unchanged; four strains each, n0 = 10."""
    gene_a = ("geneA", 1000, 2000, [(p, 10, 20) for p in (1200, 1400, 1600, 1800)])
    gene_b = ("geneB", 3000, 4000, [(p, 10, 10) for p in (3200, 3400, 3600, 3800)])
    return _make_dataset([gene_a, gene_b], intergenic=intergenic)


class TestTwoGeneScenario:

    @pytest.fixture(scope="class")
    def result(self):
        return calculate_fitness(*_two_gene_dataset())

    def test_output_columns(self, result):
        strains, genes, _ = result
        assert list(strains.columns) == STRAIN_COLUMNS
        assert list(genes.columns) == GENE_COLUMNS

    def test_shapes(self, result):
        strains, genes, _ = result
        # 8 strains in 1 treated sample; reference rows removed
        assert len(strains) == 8
        assert len(genes) == 2
        assert set(strains["ID"]) == {"s1"}

    def test_strain_fitness(self, result):
        strains, _, _ = result
        fit = strains.groupby("locusId")["Strain_fitness"].mean()
        assert fit["geneA"] == pytest.approx(1.0, abs=0.05)
        assert fit["geneB"] == pytest.approx(0.0, abs=0.05)

    def test_not_significant(self, result):
        strains, genes, _ = result
        assert (genes["Significant"] == 0).all()
        assert (genes["t"].abs() < 4).all()
        assert np.isfinite(strains["t"]).all()

    def test_gene_table_sums(self, result):
        _, genes, _ = result
        a = genes.set_index("locusId").loc["geneA"]
        assert a["Counts"] == 80
        assert a["n0"] == 40
        assert a["log2FC"] == pytest.approx(1.0)
        assert a["Strains_per_gene"] == 4

    def test_summary(self, result):
        _, _, summary = result
        assert summary["sum_nafter"] == 120
        assert summary["sum_n0"] == 80
        assert summary["n_calibration_genes"] == 2
        # both halves of each gene agree exactly
        assert summary["mad12"] == pytest.approx(0.0)
        assert summary["Vt"] == pytest.approx(0.0)
        assert summary["prelim_center"] == pytest.approx(np.log2(21 / 11) / 2)


class TestPipelineBehaviour:

    def test_idempotent(self):
        first = calculate_fitness(*_two_gene_dataset())
        second = calculate_fitness(*_two_gene_dataset())
        pd.testing.assert_frame_equal(first[0], second[0])
        pd.testing.assert_frame_equal(first[1], second[1])

    def test_unmatched_strains_counted(self):
        strains, _, summary = calculate_fitness(*_two_gene_dataset(intergenic=[2500, 5000]))
        assert summary["n_unmatched_strains"] == 2
        assert strains["barcode"].nunique() == 8

    def test_thin_half_gene_still_scored(self):
        """A gene with 5 reference reads on one half is scored but not used for Vt."""
        gene_a = ("geneA", 1000, 2000, [(p, 10, 20) for p in (1200, 1400, 1600, 1800)])
        gene_b = ("geneB", 3000, 4000, [(p, 10, 10) for p in (3200, 3400, 3600, 3800)])
        gene_c = ("geneC", 5000, 6000, [(5200, 5, 5), (5600, 10, 12),
                                        (5700, 10, 9), (5800, 10, 11)])
        strains, genes, summary = calculate_fitness(*_make_dataset([gene_a, gene_b, gene_c]))
        assert summary["n_calibration_genes"] == 2
        assert "geneC" in set(genes["locusId"])
        c = genes.set_index("locusId").loc["geneC"]
        assert np.isfinite(c["Norm_fg"])
        assert np.isfinite(c["t"])

    def test_low_coverage_gene_dropped(self):
        gene_a = ("geneA", 1000, 2000, [(p, 10, 20) for p in (1200, 1400, 1600, 1800)])
        gene_b = ("geneB", 3000, 4000, [(p, 10, 10) for p in (3200, 3400, 3600, 3800)])
        gene_low = ("geneLow", 5000, 6000, [(5200, 5, 5), (5800, 5, 5)])
        _, genes, _ = calculate_fitness(*_make_dataset([gene_a, gene_b, gene_low]))
        assert "geneLow" not in set(genes["locusId"])

    def test_missing_column_is_fatal(self):
        genes, counts, meta = _two_gene_dataset()
        with pytest.raises(InputSchemaError):
            calculate_fitness(genes.drop(columns="begin"), counts, meta)

    def test_no_coverage_is_fatal(self):
        genes, counts, meta = _two_gene_dataset()
        counts["T0"] = 1
        with pytest.raises(InsufficientCoverageError):
            calculate_fitness(genes, counts, meta)
