"""Tests for utility functions."""

import math

import pytest

from gwas_harmonizer.utils import (
    chromosome_sort_key,
    complement,
    complement_pair,
    format_value,
    is_indel_marker,
    is_null,
    make_region,
    make_unique_id,
    normalize_build,
    normalize_chromosome,
    parse_optional_float,
)


class TestComplement:
    """Test allele complement helpers."""

    @pytest.mark.parametrize(
        "base,expected",
        [("A", "T"), ("T", "A"), ("C", "G"), ("G", "C"), ("N", "N")],
    )
    def test_single_base(self, base: str, expected: str) -> None:
        assert complement(base) == expected

    def test_multi_base(self) -> None:
        """Each base of a multi-base allele is complemented."""
        assert complement("ACGT") == "TGCA"

    def test_pair(self) -> None:
        assert complement_pair("A", "C") == ("T", "G")


class TestNormalizeChromosome:
    """Test chromosome normalization."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("1", "chr1"),
            ("chr1", "chr1"),
            ("CHR01", "chr1"),
            ("23", "chrX"),
            ("24", "chrY"),
            ("25", "chrM"),
            ("x", "chrX"),
            ("MT", "chrM"),
            ("chrMT", "chrM"),
            ("22", "chr22"),
        ],
    )
    def test_normalize(self, raw: str, expected: str) -> None:
        assert normalize_chromosome(raw) == expected

    def test_unplaced_contig_kept(self) -> None:
        assert normalize_chromosome("chr1_KI270706v1_random") == "chr1_KI270706v1_random"


class TestChromosomeSortKey:
    """Test natural chromosome ordering."""

    def test_natural_order(self) -> None:
        chroms = ["chrX", "chr10", "chrM", "chr2", "chr1_KI270706v1_random", "chrY", "chr1"]
        assert sorted(chroms, key=chromosome_sort_key) == [
            "chr1",
            "chr2",
            "chr10",
            "chrX",
            "chrY",
            "chrM",
            "chr1_KI270706v1_random",
        ]


class TestNormalizeBuild:
    """Test build label normalization."""

    @pytest.mark.parametrize(
        "label,expected",
        [("hg19", "hg19"), ("GRCh37", "hg19"), ("grch38", "hg38"), ("NCBI36", "hg18"), ("hg17", "hg17")],
    )
    def test_known(self, label: str, expected: str) -> None:
        assert normalize_build(label) == expected

    def test_unknown(self) -> None:
        assert normalize_build("hg42") is None


class TestNullHandling:
    """Test missing-value tokens and optional float parsing."""

    @pytest.mark.parametrize("value", ["", "NA", "na", "NaN", "nan", ".", "null", "None", " NA "])
    def test_null_tokens(self, value: str) -> None:
        assert is_null(value) is True
        assert parse_optional_float(value) is None

    def test_number(self) -> None:
        assert parse_optional_float("0.05") == pytest.approx(0.05)
        assert parse_optional_float("1e-8") == pytest.approx(1e-8)

    def test_garbage_raises(self) -> None:
        with pytest.raises(ValueError):
            parse_optional_float("abc")

    @pytest.mark.parametrize("allele", ["I", "D", "IND", "DEL", "-"])
    def test_indel_markers(self, allele: str) -> None:
        assert is_indel_marker(allele) is True

    def test_sequence_is_not_indel_marker(self) -> None:
        assert is_indel_marker("AT") is False


class TestFormatting:
    """Test output formatting helpers."""

    def test_format_none_and_nan(self) -> None:
        assert format_value(None) == "NA"
        assert format_value(math.nan) == "NA"

    def test_format_integral_float(self) -> None:
        assert format_value(5000.0) == "5000"

    def test_format_float(self) -> None:
        assert format_value(0.05) == "0.05"
        assert format_value(-0.05) == "-0.05"

    def test_format_int_and_str(self) -> None:
        assert format_value(100000) == "100000"
        assert format_value("strand-flip") == "strand-flip"

    def test_unique_id(self) -> None:
        assert make_unique_id("chr1", 10000, "A", "G") == "chr1_10000_A_G"

    def test_region(self) -> None:
        assert make_region("chr1", 100, 102) == "chr1:100-102"
