"""
Build clean observation sets from pairs, arrays and DataFrames.
"""

# Cleaning summary: coerce predictor/response cells to numbers, log and keep
# every cell that could not be parsed so it can be corrected by hand, drop
# rows without a finite pair, and reshape the spreadsheet "one column per
# replicate" layout into long form.

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Mapping, Sequence

import numpy as np
import pandas as pd

from .fitting import FitResult, fit_curve

logger = logging.getLogger(__name__)

X_COL = "x"
Y_COL = "y"
REPLICATE_COL = "replicate"
SD_COL = "y_sd"
COUNT_COL = "n_replicates"
_RESERVED = {X_COL, Y_COL, REPLICATE_COL, SD_COL, COUNT_COL}
_REJECTED_COLUMNS = ["row", "column", "value"]


def _readonly(values) -> np.ndarray:
    arr = np.array(values, dtype=float, copy=True)
    arr.setflags(write=False)
    return arr


def _coerce_numeric(
    df: pd.DataFrame, columns: Sequence[str]
) -> tuple[pd.DataFrame, list[dict]]:
    """Coerce ``columns`` to floats and report cells that held unparsable text."""
    out = df.copy()
    rejected = []
    for col in columns:
        raw = out[col]
        numeric = pd.to_numeric(raw, errors="coerce")
        bad = raw.notna() & numeric.isna()
        for row, value in raw[bad].items():
            logger.warning(
                "Row %s, column '%s': could not parse %r as a number", row, col, value
            )
            rejected.append({"row": row, "column": col, "value": value})
        out[col] = numeric.astype(float)
    return out, rejected


@dataclass(frozen=True)
class ObservationSet:
    """Paired observations with optional replicate id and categorical factors.

    Attributes:
        data: Long-form table with ``x`` and ``y`` columns, an optional
            ``replicate`` column and one column per factor. Treat as read-only;
            use :meth:`to_frame` for a modifiable copy.
        factors: Names of the categorical factor columns.
        rejected: Cells that could not be parsed as numbers
            (``row``, ``column``, ``value``).
    """

    data: pd.DataFrame = field(repr=False)
    factors: tuple[str, ...] = ()
    rejected: pd.DataFrame = field(
        default_factory=lambda: pd.DataFrame(columns=_REJECTED_COLUMNS), repr=False
    )

    # -- constructors -------------------------------------------------------

    @classmethod
    def from_frame(
        cls,
        df: pd.DataFrame,
        x: str,
        y: str,
        replicate: str | None = None,
        factors: Iterable[str] = (),
    ) -> "ObservationSet":
        """Build an observation set from a long/tidy DataFrame.

        Args:
            df: Source table, for example the output of ``pandas.read_csv``.
            x: Predictor column.
            y: Response column.
            replicate: Optional replicate/subject identifier column.
            factors: Categorical factor columns to carry along for grouping.

        Returns:
            ObservationSet: Rows with a finite ``(x, y)`` pair.

        Raises:
            KeyError: If a named column is missing.
            ValueError: If a factor name collides with a reserved column name.
        """
        factors = tuple(factors)
        wanted = [x, y] + ([replicate] if replicate else []) + list(factors)
        missing = [c for c in wanted if c not in df.columns]
        if missing:
            raise KeyError(f"Missing columns: {missing}. Available: {list(df.columns)}")
        clash = _RESERVED.intersection(factors)
        if clash:
            raise ValueError(f"Factor names {sorted(clash)} are reserved.")

        working, rejected = _coerce_numeric(df[wanted], [x, y])
        renames = {x: X_COL, y: Y_COL}
        if replicate:
            renames[replicate] = REPLICATE_COL
        working = working.rename(columns=renames)

        finite = np.isfinite(working[X_COL]) & np.isfinite(working[Y_COL])
        n_dropped = int((~finite).sum())
        if n_dropped:
            logger.info("Dropped %d rows without a finite (x, y) pair", n_dropped)
        working = working[finite]

        if factors:
            missing_level = working[list(factors)].isna().any(axis=1)
            if bool(missing_level.any()):
                logger.warning(
                    "Dropped %d rows with a missing factor level", int(missing_level.sum())
                )
                working = working[~missing_level]

        return cls(
            data=working.reset_index(drop=True),
            factors=factors,
            rejected=pd.DataFrame(rejected, columns=_REJECTED_COLUMNS),
        )

    @classmethod
    def from_arrays(
        cls,
        x: Sequence[float],
        y: Sequence[float],
        replicate: Sequence | None = None,
        factors: Mapping[str, Sequence] | None = None,
    ) -> "ObservationSet":
        columns = {X_COL: list(x), Y_COL: list(y)}
        if replicate is not None:
            columns[REPLICATE_COL] = list(replicate)
        for name, values in (factors or {}).items():
            columns[name] = list(values)
        lengths = {len(v) for v in columns.values()}
        if len(lengths) > 1:
            raise ValueError("x, y, replicate and factor columns must have equal length.")
        return cls.from_frame(
            pd.DataFrame(columns),
            X_COL,
            Y_COL,
            replicate=REPLICATE_COL if replicate is not None else None,
            factors=tuple(factors or ()),
        )

    @classmethod
    def from_pairs(cls, pairs: Iterable[Sequence[float]]) -> "ObservationSet":
        """Build an observation set from ``(x, y)`` pairs."""
        pairs = list(pairs)
        if any(len(p) != 2 for p in pairs):
            raise ValueError("Every observation must be an (x, y) pair.")
        xs = [p[0] for p in pairs]
        ys = [p[1] for p in pairs]
        return cls.from_arrays(xs, ys)

    @classmethod
    def from_wide(
        cls,
        df: pd.DataFrame,
        x: str,
        replicate_columns: Sequence[str] | None = None,
    ) -> "ObservationSet":
        """Reshape a one-column-per-replicate table into long form.

        The spreadsheet layout has one predictor column and a response column
        for every replicate or subject, e.g. ``time, cell 1, cell 2, ...``.
        Each response column becomes a replicate id.

        Args:
            df: Wide table.
            x: Predictor column.
            replicate_columns: Response columns; defaults to every column
                other than ``x``.

        Raises:
            KeyError: If a named column is missing.
            ValueError: If there are no response columns.
        """
        if x not in df.columns:
            raise KeyError(f"Missing predictor column '{x}'.")
        if replicate_columns is None:
            replicate_columns = [c for c in df.columns if c != x]
        replicate_columns = list(replicate_columns)
        if not replicate_columns:
            raise ValueError("No replicate columns to reshape.")
        missing = [c for c in replicate_columns if c not in df.columns]
        if missing:
            raise KeyError(f"Missing replicate columns: {missing}")

        long = df[[x] + replicate_columns].melt(
            id_vars=[x],
            value_vars=replicate_columns,
            var_name=REPLICATE_COL,
            value_name=Y_COL,
        )
        long = long.rename(columns={x: X_COL})
        return cls.from_frame(long, X_COL, Y_COL, replicate=REPLICATE_COL)

    # -- accessors ----------------------------------------------------------

    @property
    def x(self) -> np.ndarray:
        return _readonly(self.data[X_COL])

    @property
    def y(self) -> np.ndarray:
        return _readonly(self.data[Y_COL])

    @property
    def replicate(self) -> np.ndarray | None:
        if REPLICATE_COL not in self.data.columns:
            return None
        return self.data[REPLICATE_COL].to_numpy()

    @property
    def n_obs(self) -> int:
        return int(len(self.data))

    @property
    def n_distinct(self) -> int:
        """Number of distinct ``(x, y)`` pairs."""
        return int(len(self.data[[X_COL, Y_COL]].drop_duplicates()))

    def __len__(self) -> int:
        return self.n_obs

    def to_frame(self) -> pd.DataFrame:
        return self.data.copy()

    def levels(self, factor: str) -> list:
        if factor not in self.factors:
            raise KeyError(f"Unknown factor '{factor}'. Factors: {list(self.factors)}")
        return sorted(self.data[factor].unique().tolist())

    def groups(self, by: Sequence[str]) -> Iterator[tuple[tuple, "ObservationSet"]]:
        """Yield ``(levels, subset)`` for each observed combination of factors."""
        by = list(by)
        unknown = [b for b in by if b not in self.factors]
        if unknown:
            raise KeyError(f"Unknown factors: {unknown}. Factors: {list(self.factors)}")
        for key, sub in self.data.groupby(by, sort=True):
            key = key if isinstance(key, tuple) else (key,)
            yield key, ObservationSet(
                data=sub.reset_index(drop=True), factors=self.factors
            )

    # -- transformations ----------------------------------------------------

    def collapse_replicates(self) -> "ObservationSet":
        """Average replicate responses at each predictor value.

        Returns a set with one row per ``x`` (within each factor combination)
        holding the mean response, its sample standard deviation ``y_sd``
        (NaN for a single reading) and the replicate count ``n_replicates``.
        """
        keys = list(self.factors) + [X_COL]
        records = []
        for key, group in self.data.groupby(keys, sort=True):
            key = key if isinstance(key, tuple) else (key,)
            values = group[Y_COL].to_numpy(dtype=float)
            row = dict(zip(keys, key))
            row[Y_COL] = float(np.mean(values))
            row[SD_COL] = float(np.std(values, ddof=1)) if len(values) > 1 else np.nan
            row[COUNT_COL] = int(len(values))
            records.append(row)
        collapsed = pd.DataFrame.from_records(
            records, columns=keys + [Y_COL, SD_COL, COUNT_COL]
        )
        return ObservationSet(data=collapsed, factors=self.factors, rejected=self.rejected)

    def inverse_variance_weights(self) -> np.ndarray:
        """Weights ``1/SD²`` for a set produced by :meth:`collapse_replicates`.

        Raises:
            KeyError: If the set has no ``y_sd`` column.
            ValueError: If any standard deviation is missing or zero.
        """
        if SD_COL not in self.data.columns:
            raise KeyError("Call collapse_replicates() first; no 'y_sd' column.")
        sd = self.data[SD_COL].to_numpy(dtype=float)
        if not np.all(np.isfinite(sd) & (sd > 0)):
            raise ValueError(
                "Inverse-variance weights need every x to have replicates with non-zero spread."
            )
        return 1.0 / sd**2

    def fit(self, model, **kwargs) -> FitResult:
        """Fit ``model`` to this set; keyword arguments go to :func:`fit_curve`."""
        return fit_curve(model, self.x, self.y, **kwargs)
