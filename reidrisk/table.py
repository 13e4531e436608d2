"""
Read access to the table whose risk is being estimated.

The engine only needs a handful of operations from a table (row and column
counts, cell values as strings, per-row outlier flags and an optional
population superset). TableAccessor names them; DataFrameTable provides them
for a pandas DataFrame, which is how tables reach the engine in practice.

Author: James Weatherhead, UTMB
"""

import logging
from abc import ABC, abstractmethod
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .errors import InvalidArgumentError

# Configure logging
logger = logging.getLogger(__name__)

# String used for missing cells, so that all missing values group together
NULL_VALUE = "NULL"


class TableAccessor(ABC):
    """
    Abstract read-only view of a table.

    Subclasses provide cell access; ``rows`` has a generic implementation on
    top of ``value`` that subclasses may override for speed.
    """

    @abstractmethod
    def num_rows(self) -> int:
        pass

    @abstractmethod
    def num_columns(self) -> int:
        pass

    @abstractmethod
    def column_index_of(self, name: str) -> int:
        """Index of the named column, or -1 if there is no such column."""
        pass

    @abstractmethod
    def value(self, row: int, column: int) -> str:
        pass

    @abstractmethod
    def is_outlier(self, row: int, columns: Sequence[int]) -> bool:
        """Whether the row was suppressed and must be left out of grouping."""
        pass

    def superset(self) -> Optional["TableAccessor"]:
        """The population this table was sampled from, if known."""
        return None

    def rows(self, columns: Sequence[int]) -> Iterator[Tuple[str, ...]]:
        """Yield the projection of every row onto ``columns``."""
        for row in range(self.num_rows()):
            yield tuple(self.value(row, column) for column in columns)


class DataFrameTable(TableAccessor):
    """
    TableAccessor over a pandas DataFrame.

    Cell values are compared as strings; missing values (NaN/None) all map to
    NULL_VALUE. Outlier rows are given as a boolean mask aligned with the rows
    of the frame.

    Attributes:
        data (pd.DataFrame): String-valued copy of the input frame
        outliers (np.ndarray): Boolean outlier mask, one entry per row

    Example:
        >>> df = pd.DataFrame({'age': ['20-29', '20-29', '30-39'],
        ...                    'zip': ['123*', '123*', '124*']})
        >>> table = DataFrameTable(df)
        >>> table.column_index_of('zip')
        1
    """

    def __init__(
        self,
        data: pd.DataFrame,
        outliers: Optional[Iterable[bool]] = None,
        superset: Optional["DataFrameTable"] = None
    ):
        """
        Initialize the table.

        Args:
            data: Source frame; column names become attribute names
            outliers: Optional per-row suppression flags
            superset: Optional table holding the population the data was
                      sampled from

        Raises:
            InvalidArgumentError: If the outlier mask has the wrong length
        """
        self.data = data.astype(object).where(data.notna(), NULL_VALUE).astype(str)
        self.data = self.data.reset_index(drop=True)
        self._columns = [str(c) for c in data.columns]

        if outliers is None:
            self.outliers = np.zeros(len(data), dtype=bool)
        else:
            self.outliers = np.asarray(list(outliers), dtype=bool)
            if len(self.outliers) != len(data):
                raise InvalidArgumentError(
                    f"Outlier mask has {len(self.outliers)} entries for {len(data)} rows"
                )

        self._superset = superset

    @classmethod
    def with_suppressed_rows(
        cls,
        data: pd.DataFrame,
        columns: Sequence[str],
        token: str = "*",
        superset: Optional["DataFrameTable"] = None
    ) -> "DataFrameTable":
        """
        Build a table whose outliers are the rows suppressed on ``columns``.

        A row counts as suppressed when every listed column holds ``token``.
        """
        missing = [c for c in columns if c not in data.columns]
        if missing:
            raise InvalidArgumentError(f"{missing[0]} is not an attribute")
        mask = (data[list(columns)].astype(str) == token).all(axis=1)
        return cls(data, outliers=mask.values, superset=superset)

    def num_rows(self) -> int:
        return len(self.data)

    def num_columns(self) -> int:
        return len(self._columns)

    def column_index_of(self, name: str) -> int:
        try:
            return self._columns.index(name)
        except ValueError:
            return -1

    def column_names(self) -> List[str]:
        return list(self._columns)

    def value(self, row: int, column: int) -> str:
        return self.data.iat[row, column]

    def is_outlier(self, row: int, columns: Sequence[int]) -> bool:
        return bool(self.outliers[row])

    def superset(self) -> Optional["DataFrameTable"]:
        return self._superset

    def rows(self, columns: Sequence[int]) -> Iterator[Tuple[str, ...]]:
        projection = self.data.iloc[:, list(columns)]
        return projection.itertuples(index=False, name=None)

    def __repr__(self) -> str:
        return f"DataFrameTable(rows={self.num_rows()}, columns={self._columns})"


def resolve_quasi_identifiers(
    table: TableAccessor,
    quasi_identifiers: Iterable[str]
) -> Tuple[List[str], List[int]]:
    """
    Validate a quasi-identifier set against a table.

    Args:
        table: Table the attributes must belong to
        quasi_identifiers: Attribute names

    Returns:
        Tuple of (names, column indices); both ordered by column index

    Raises:
        InvalidArgumentError: If the set is None or empty, contains a
            duplicate, or names an unknown attribute
    """
    if quasi_identifiers is None:
        raise InvalidArgumentError("Quasi-identifiers must not be None")
    if isinstance(quasi_identifiers, str):
        quasi_identifiers = [quasi_identifiers]

    names = list(quasi_identifiers)
    if not names:
        raise InvalidArgumentError("At least one quasi-identifier is required")
    if len(set(names)) != len(names):
        raise InvalidArgumentError(f"Duplicate quasi-identifiers in {names}")

    resolved = []
    for name in names:
        index = table.column_index_of(name)
        if index == -1:
            raise InvalidArgumentError(f"{name} is not an attribute")
        resolved.append((index, name))
    resolved.sort()

    return [name for _, name in resolved], [index for index, _ in resolved]
