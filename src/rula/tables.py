"""
RULA combination tables (McAtamney & Corlett, 1993).

    Table A  upper arm × lower arm × wrist × wrist twist  -> wrist/arm posture score
    Table B  neck × trunk × legs                          -> neck/trunk/leg posture score
    Table C  wrist/arm score × neck/trunk/leg score       -> final score (1-7)

Tables are embedded constants, frozen and validated when this module is
imported.  Every lookup clamps each 1-based index into the table's range, so
scores above the last row/column saturate instead of failing.
"""

import logging
from typing import Sequence

import numpy as np

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class LookupTable:
    """Immutable N-dimensional integer table addressed by 1-based indices."""

    def __init__(
        self,
        name: str,
        values,
        axes: Sequence[str],
        value_range: tuple[int, int],
    ):
        arr = np.array(values, dtype=np.float64)
        if arr.ndim != len(axes):
            raise ConfigurationError(
                f"Lookup table '{name}' has {arr.ndim} dimensions but {len(axes)} axes were declared."
            )
        if arr.size == 0 or np.isnan(arr).any():
            raise ConfigurationError(f"Lookup table '{name}' is empty or contains NaN.")
        lo, hi = value_range
        if arr.min() < lo or arr.max() > hi or not np.all(arr == np.round(arr)):
            raise ConfigurationError(
                f"Lookup table '{name}' holds values outside the integer range [{lo}, {hi}]."
            )
        arr.setflags(write=False)
        self.name = name
        self.axes = tuple(axes)
        self.value_range = (int(lo), int(hi))
        self._values = arr

    @property
    def shape(self) -> tuple[int, ...]:
        return self._values.shape

    @property
    def rows(self) -> int:
        return self._values.shape[0]

    @property
    def cols(self) -> int:
        return self._values.shape[1]

    @property
    def values(self) -> np.ndarray:
        return self._values

    def clamp(self, axis: int, index):
        """Clamp 1-based index values into ``[1, size]`` along one axis."""
        return np.clip(index, 1, self._values.shape[axis])

    def lookup(self, *indices):
        """Look up one or many cells.

        Each argument is a scalar or an array of 1-based indices (arrays
        broadcast against each other).  Indices are rounded, clamped to the
        axis bounds and NaN indices yield NaN.

        Returns:
            A float scalar or a float array of looked-up scores.
        """
        if len(indices) != self._values.ndim:
            raise ConfigurationError(
                f"Lookup table '{self.name}' needs {self._values.ndim} indices "
                f"({', '.join(self.axes)}), got {len(indices)}."
            )
        arrays = np.broadcast_arrays(*[np.asarray(i, dtype=np.float64) for i in indices])
        nan_mask = np.zeros(arrays[0].shape, dtype=bool)
        positions = []
        for axis, arr in enumerate(arrays):
            nan_mask |= np.isnan(arr)
            filled = np.where(np.isnan(arr), 1.0, arr)
            clamped = self.clamp(axis, np.rint(filled)).astype(np.intp)
            positions.append(clamped - 1)
        out = self._values[tuple(positions)].astype(np.float64)
        if out.ndim == 0:
            return float("nan") if bool(nan_mask) else float(out)
        out[nan_mask] = np.nan
        return out

    def sheet(self) -> np.ndarray:
        """2-D view as printed on the RULA worksheet (first axis pairs as rows)."""
        if self._values.ndim <= 2:
            return self._values
        split = 2 if self._values.ndim == 4 else 1
        rows = int(np.prod(self._values.shape[:split]))
        return self._values.reshape(rows, -1)

    def __repr__(self) -> str:
        return f"LookupTable({self.name!r}, shape={self.shape}, axes={self.axes})"


def lookup(table: LookupTable, *indices):
    """Module-level shorthand for :meth:`LookupTable.lookup`."""
    return table.lookup(*indices)


# ---------------------------------------------------------------------------
# Table A, rows (upper arm, lower arm) x columns (wrist, wrist twist)
# ---------------------------------------------------------------------------
_TABLE_A_SHEET = [
    # W1     W2     W3     W4
    [1, 2, 2, 2, 2, 3, 3, 3],  # UA1 LA1
    [2, 2, 2, 2, 3, 3, 3, 3],  # UA1 LA2
    [2, 3, 3, 3, 3, 3, 4, 4],  # UA1 LA3
    [2, 3, 3, 3, 3, 4, 4, 4],  # UA2 LA1
    [3, 3, 3, 3, 3, 4, 4, 4],  # UA2 LA2
    [3, 4, 4, 4, 4, 4, 5, 5],  # UA2 LA3
    [3, 3, 4, 4, 4, 4, 5, 5],  # UA3 LA1
    [3, 4, 4, 4, 4, 4, 5, 5],  # UA3 LA2
    [4, 4, 4, 4, 4, 5, 5, 5],  # UA3 LA3
    [4, 4, 4, 4, 4, 5, 5, 5],  # UA4 LA1
    [4, 4, 4, 4, 4, 5, 5, 5],  # UA4 LA2
    [4, 4, 4, 5, 5, 5, 6, 6],  # UA4 LA3
    [5, 5, 5, 5, 5, 6, 6, 7],  # UA5 LA1
    [5, 6, 6, 6, 6, 7, 7, 7],  # UA5 LA2
    [6, 6, 6, 7, 7, 7, 7, 8],  # UA5 LA3
    [7, 7, 7, 7, 7, 8, 8, 9],  # UA6 LA1
    [8, 8, 8, 8, 8, 9, 9, 9],  # UA6 LA2
    [9, 9, 9, 9, 9, 9, 9, 9],  # UA6 LA3
]

# ---------------------------------------------------------------------------
# Table B, rows neck x columns (trunk, legs)
# ---------------------------------------------------------------------------
_TABLE_B_SHEET = [
    # T1    T2    T3    T4    T5    T6
    [1, 3, 2, 3, 3, 4, 5, 5, 6, 6, 7, 7],  # N1
    [2, 3, 2, 3, 4, 5, 5, 5, 6, 7, 7, 7],  # N2
    [3, 3, 3, 4, 4, 5, 5, 5, 6, 7, 7, 7],  # N3
    [5, 5, 5, 6, 6, 7, 7, 7, 7, 7, 8, 8],  # N4
    [7, 7, 7, 7, 7, 8, 8, 8, 8, 8, 8, 8],  # N5
    [8, 8, 8, 8, 8, 8, 8, 9, 9, 9, 9, 9],  # N6
]

# ---------------------------------------------------------------------------
# Table C, rows wrist/arm score (8 = 8+) x columns neck/trunk/leg score (7 = 7+)
# ---------------------------------------------------------------------------
_TABLE_C_SHEET = [
    [1, 2, 3, 3, 4, 5, 5],
    [2, 2, 3, 4, 4, 5, 5],
    [3, 3, 3, 4, 4, 5, 6],
    [3, 3, 3, 4, 5, 6, 6],
    [4, 4, 4, 5, 6, 7, 7],
    [4, 4, 5, 6, 6, 7, 7],
    [5, 5, 6, 6, 7, 7, 7],
    [5, 5, 6, 7, 7, 7, 7],
]


def _build_tables() -> tuple[LookupTable, LookupTable, LookupTable]:
    sheet_a = np.array(_TABLE_A_SHEET)
    sheet_b = np.array(_TABLE_B_SHEET)
    if sheet_a.shape != (18, 8):
        raise ConfigurationError(f"Table A sheet must be 18 × 8, got {sheet_a.shape}.")
    if sheet_b.shape != (6, 12):
        raise ConfigurationError(f"Table B sheet must be 6 × 12, got {sheet_b.shape}.")
    if np.array(_TABLE_C_SHEET).shape != (8, 7):
        raise ConfigurationError("Table C sheet must be 8 × 7.")

    table_a = LookupTable(
        "Table A",
        sheet_a.reshape(6, 3, 4, 2),
        axes=("upper_arm", "lower_arm", "wrist", "wrist_twist"),
        value_range=(1, 9),
    )
    table_b = LookupTable(
        "Table B",
        sheet_b.reshape(6, 6, 2),
        axes=("neck", "trunk", "legs"),
        value_range=(1, 9),
    )
    table_c = LookupTable(
        "Table C",
        _TABLE_C_SHEET,
        axes=("wrist_arm", "neck_trunk_leg"),
        value_range=(1, 7),
    )
    logger.debug(f"RULA tables validated: {table_a!r}, {table_b!r}, {table_c!r}")
    return table_a, table_b, table_c


TABLE_A, TABLE_B, TABLE_C = _build_tables()
