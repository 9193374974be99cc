"""
Tests for the RULA combination tables (A, B, C).

Covers:
    - Published cell values and table shapes
    - Index clamping above the last row/column and below 1
    - NaN propagation and vectorised lookups
    - Validation of malformed tables
"""

import sys
from pathlib import Path

import numpy as np
import pytest

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.rula.exceptions import ConfigurationError
from src.rula.tables import TABLE_A, TABLE_B, TABLE_C, LookupTable, lookup

# McAtamney & Corlett (1993) worksheet grids, typed in independently of the module
PUBLISHED_A = [
    [1, 2, 2, 2, 2, 3, 3, 3],
    [2, 2, 2, 2, 3, 3, 3, 3],
    [2, 3, 3, 3, 3, 3, 4, 4],
    [2, 3, 3, 3, 3, 4, 4, 4],
    [3, 3, 3, 3, 3, 4, 4, 4],
    [3, 4, 4, 4, 4, 4, 5, 5],
    [3, 3, 4, 4, 4, 4, 5, 5],
    [3, 4, 4, 4, 4, 4, 5, 5],
    [4, 4, 4, 4, 4, 5, 5, 5],
    [4, 4, 4, 4, 4, 5, 5, 5],
    [4, 4, 4, 4, 4, 5, 5, 5],
    [4, 4, 4, 5, 5, 5, 6, 6],
    [5, 5, 5, 5, 5, 6, 6, 7],
    [5, 6, 6, 6, 6, 7, 7, 7],
    [6, 6, 6, 7, 7, 7, 7, 8],
    [7, 7, 7, 7, 7, 8, 8, 9],
    [8, 8, 8, 8, 8, 9, 9, 9],
    [9, 9, 9, 9, 9, 9, 9, 9],
]

PUBLISHED_B = [
    [1, 3, 2, 3, 3, 4, 5, 5, 6, 6, 7, 7],
    [2, 3, 2, 3, 4, 5, 5, 5, 6, 7, 7, 7],
    [3, 3, 3, 4, 4, 5, 5, 5, 6, 7, 7, 7],
    [5, 5, 5, 6, 6, 7, 7, 7, 7, 7, 8, 8],
    [7, 7, 7, 7, 7, 8, 8, 8, 8, 8, 8, 8],
    [8, 8, 8, 8, 8, 8, 8, 9, 9, 9, 9, 9],
]

PUBLISHED_C = [
    [1, 2, 3, 3, 4, 5, 5],
    [2, 2, 3, 4, 4, 5, 5],
    [3, 3, 3, 4, 4, 5, 6],
    [3, 3, 3, 4, 5, 6, 6],
    [4, 4, 4, 5, 6, 7, 7],
    [4, 4, 5, 6, 6, 7, 7],
    [5, 5, 6, 6, 7, 7, 7],
    [5, 5, 6, 7, 7, 7, 7],
]


# ============================================================================
# Published values
# ============================================================================

class TestPublishedTables:

    def test_shapes(self):
        assert TABLE_A.shape == (6, 3, 4, 2)
        assert TABLE_B.shape == (6, 6, 2)
        assert TABLE_C.shape == (8, 7)
        assert TABLE_C.rows == 8 and TABLE_C.cols == 7

    def test_sheet_layout(self):
        assert TABLE_A.sheet().shape == (18, 8)
        assert TABLE_B.sheet().shape == (6, 12)
        assert TABLE_C.sheet().shape == (8, 7)

    def test_table_a_matches_worksheet(self):
        np.testing.assert_array_equal(TABLE_A.sheet(), PUBLISHED_A)

    def test_table_b_matches_worksheet(self):
        np.testing.assert_array_equal(TABLE_B.sheet(), PUBLISHED_B)

    def test_table_c_matches_worksheet(self):
        np.testing.assert_array_equal(TABLE_C.sheet(), PUBLISHED_C)

    def test_table_a_cells(self):
        assert TABLE_A.lookup(1, 3, 2, 1) == 3.0
        assert TABLE_A.lookup(1, 1, 1, 1) == 1.0
        assert TABLE_A.lookup(2, 2, 1, 1) == 3.0
        assert TABLE_A.lookup(6, 3, 4, 2) == 9.0
        assert TABLE_A.lookup(5, 3, 4, 2) == 8.0

    def test_table_b_cells(self):
        assert TABLE_B.lookup(1, 1, 1) == 1.0
        assert TABLE_B.lookup(1, 2, 1) == 2.0
        assert TABLE_B.lookup(2, 1, 1) == 2.0
        assert TABLE_B.lookup(3, 4, 1) == 5.0
        assert TABLE_B.lookup(6, 6, 2) == 9.0

    def test_table_c_cells(self):
        assert TABLE_C.lookup(1, 1) == 1.0
        assert TABLE_C.lookup(3, 2) == 3.0
        assert TABLE_C.lookup(4, 5) == 5.0
        assert TABLE_C.lookup(8, 7) == 7.0

    def test_value_ranges(self):
        assert TABLE_A.values.min() >= 1 and TABLE_A.values.max() <= 9
        assert TABLE_B.values.min() >= 1 and TABLE_B.values.max() <= 9
        assert TABLE_C.values.min() >= 1 and TABLE_C.values.max() <= 7

    def test_values_are_read_only(self):
        with pytest.raises(ValueError):
            TABLE_C.values[0, 0] = 7


# ============================================================================
# Clamping, NaN and broadcasting
# ============================================================================

class TestLookupBehaviour:

    def test_row_above_range_saturates(self):
        for col in range(1, TABLE_C.cols + 1):
            assert TABLE_C.lookup(999, col) == TABLE_C.lookup(TABLE_C.rows, col)

    def test_column_above_range_saturates(self):
        for row in range(1, TABLE_C.rows + 1):
            assert TABLE_C.lookup(row, 12) == TABLE_C.lookup(row, TABLE_C.cols)

    def test_index_below_one_clamps_to_first(self):
        assert TABLE_C.lookup(0, -3) == TABLE_C.lookup(1, 1)

    def test_table_a_upper_arm_above_six(self):
        assert TABLE_A.lookup(9, 3, 4, 2) == TABLE_A.lookup(6, 3, 4, 2)

    def test_nan_index_gives_nan(self):
        assert np.isnan(TABLE_C.lookup(np.nan, 2))
        assert np.isnan(TABLE_B.lookup(1, np.nan, 1))

    def test_vectorised_lookup(self):
        rows = np.array([1.0, 3.0, np.nan, 20.0])
        cols = np.array([1.0, 2.0, 2.0, 7.0])
        out = TABLE_C.lookup(rows, cols)
        assert out.shape == (4,)
        assert out[0] == 1.0
        assert out[1] == 3.0
        assert np.isnan(out[2])
        assert out[3] == 7.0

    def test_scalar_broadcasts_against_array(self):
        out = lookup(TABLE_B, np.array([1.0, 2.0]), 1, 1)
        np.testing.assert_array_equal(out, [1.0, 2.0])

    def test_wrong_number_of_indices(self):
        with pytest.raises(ConfigurationError):
            TABLE_C.lookup(1, 2, 3)


# ============================================================================
# Construction checks
# ============================================================================

class TestTableValidation:

    def test_dimension_mismatch(self):
        with pytest.raises(ConfigurationError):
            LookupTable("bad", [[1, 2], [3, 4]], axes=("a",), value_range=(1, 7))

    def test_value_out_of_range(self):
        with pytest.raises(ConfigurationError):
            LookupTable("bad", [[1, 2], [3, 8]], axes=("a", "b"), value_range=(1, 7))

    def test_non_integer_value(self):
        with pytest.raises(ConfigurationError):
            LookupTable("bad", [[1, 2.5]], axes=("a", "b"), value_range=(1, 7))

    def test_nan_value(self):
        with pytest.raises(ConfigurationError):
            LookupTable("bad", [[1, np.nan]], axes=("a", "b"), value_range=(1, 7))
