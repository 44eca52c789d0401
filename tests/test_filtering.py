"""
Unit tests for filtering.py: reference_counts, apply_reference.
"""

import pandas as pd
import pytest

from barseq_fitness.errors import InsufficientCoverageError
from barseq_fitness.filtering import apply_reference, reference_counts


def _make_long(rows):
    """
    Build a long table from (barcode, locusId, Condition, Filename,
    Reference, Counts) tuples.
    """
    df = pd.DataFrame(
        rows, columns=["barcode", "locusId", "Condition", "Filename", "Reference", "Counts"]
    )
    df["scaffold"] = "chr"
    df["pos"] = df["barcode"].str.extract(r"(\d+)", expand=False).astype(int) * 100
    return df


def _gene_rows(locus, barcodes, n0, condition="LB", ref="T0", sample="S1", counts=10):
    rows = []
    for bc, n in zip(barcodes, n0):
        rows.append((bc, locus, condition, ref, True, n))
        rows.append((bc, locus, condition, sample, False, counts))
    return rows


class TestReferenceCounts:

    def test_sums_reference_replicates(self):
        rows = _gene_rows("g1", ["b1", "b2", "b3"], [10, 10, 10])
        # Second time-zero replicate for b1
        rows.append(("b1", "g1", "LB", "T0b", True, 5))
        out = reference_counts(_make_long(rows))
        n0 = out.set_index("barcode")["n0"]
        assert n0["b1"] == 15
        assert n0["b2"] == 10

    def test_drops_low_strain(self):
        rows = _gene_rows("g1", ["b1", "b2", "b3", "b4"], [2, 10, 10, 10])
        out = reference_counts(_make_long(rows))
        assert "b1" not in set(out["barcode"])
        assert len(out) == 3

    def test_drops_low_gene(self):
        """Gene total below min_gene_n0 after strain filtering → all strains dropped."""
        # b1 (n0=2) is dropped first, leaving 28 < 30
        rows = _gene_rows("g1", ["b1", "b2", "b3"], [2, 14, 14])
        out = reference_counts(_make_long(rows))
        assert out.empty

    def test_keeps_exactly_at_threshold(self):
        rows = _gene_rows("g1", ["b1", "b2", "b3"], [3, 13, 14])
        out = reference_counts(_make_long(rows), min_strain_n0=3, min_gene_n0=30)
        assert len(out) == 3

    def test_per_condition(self):
        """A strain can pass in one condition and fail in another."""
        rows = _gene_rows("g1", ["b1", "b2", "b3"], [10, 10, 10], condition="LB")
        rows += _gene_rows("g1", ["b1", "b2", "b3"], [1, 10, 10], condition="Glc",
                           ref="T0g", sample="S2")
        out = reference_counts(_make_long(rows))
        lb = out.loc[out["Condition"] == "LB"]
        glc = out.loc[out["Condition"] == "Glc"]
        assert len(lb) == 3
        # b1 dropped leaves 20 < 30 in Glc
        assert glc.empty

    def test_output_columns(self):
        rows = _gene_rows("g1", ["b1", "b2", "b3"], [10, 10, 10])
        out = reference_counts(_make_long(rows))
        assert list(out.columns) == ["barcode", "scaffold", "pos", "locusId", "Condition", "n0"]


class TestApplyReference:

    def test_drops_reference_rows_and_attaches_n0(self):
        long = _make_long(_gene_rows("g1", ["b1", "b2", "b3"], [10, 10, 10]))
        out = apply_reference(long, reference_counts(long))
        assert not out["Reference"].any()
        assert (out["n0"] == 10).all()
        assert len(out) == 3

    def test_uncovered_condition_left_empty(self):
        rows = _gene_rows("g1", ["b1", "b2", "b3"], [10, 10, 10], condition="LB")
        rows += _gene_rows("g1", ["b1", "b2", "b3"], [1, 1, 1], condition="Glc",
                           ref="T0g", sample="S2")
        long = _make_long(rows)
        out = apply_reference(long, reference_counts(long))
        assert set(out["Condition"]) == {"LB"}

    def test_all_uncovered_raises(self):
        long = _make_long(_gene_rows("g1", ["b1", "b2"], [1, 1]))
        with pytest.raises(InsufficientCoverageError):
            apply_reference(long, reference_counts(long))

    def test_does_not_modify_input(self):
        long = _make_long(_gene_rows("g1", ["b1", "b2", "b3"], [10, 10, 10]))
        original_len = len(long)
        apply_reference(long, reference_counts(long))
        assert len(long) == original_len
        assert "n0" not in long.columns
