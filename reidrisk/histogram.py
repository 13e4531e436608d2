# =============================================================================
# histogram.py
# =============================================================================
# Equivalence classes and their size histogram.
#
# Records that share the same values on every quasi-identifier form an
# equivalence class. The engine only keeps the distribution of class sizes:
# an ascending list of (size, count) pairs, where count is the number of
# classes of that size. All sample-based and population-based risk estimates
# are computed from this histogram.
#
# References:
#   - Sweeney, L. (2002). k-anonymity: A model for protecting privacy.
#   - El Emam, K. (2013). Guide to the De-Identification of Personal Health
#     Information.
#
# Author: James Weatherhead
# Institution: University of Texas Medical Branch (UTMB)
# =============================================================================

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from .errors import InvalidArgumentError
from .progress import CancellationToken, ProgressPhase, detached_phase
from .table import TableAccessor, resolve_quasi_identifiers

# Configure logging
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Histogram:
    """
    Immutable class-size histogram.

    Attributes:
        entries: Ascending (size, count) pairs with unique, positive sizes
        num_records: Sum of size * count
        num_classes: Sum of count
        avg_class_size: num_records / num_classes, 0 when empty

    Example:
        >>> h = Histogram.from_class_sizes([1, 1, 3])
        >>> h.entries
        ((1, 2), (3, 1))
        >>> h.num_records, h.num_classes
        (5, 3)
    """
    entries: Tuple[Tuple[int, int], ...] = ()
    num_records: int = field(init=False)
    num_classes: int = field(init=False)
    avg_class_size: float = field(init=False)

    def __post_init__(self):
        previous = 0
        for size, count in self.entries:
            if size <= previous:
                raise InvalidArgumentError(
                    "Histogram entries must be strictly ascending by positive size"
                )
            if count <= 0:
                raise InvalidArgumentError(f"Class count must be positive, got {count}")
            previous = size

        num_records = sum(size * count for size, count in self.entries)
        num_classes = sum(count for _, count in self.entries)
        object.__setattr__(self, 'num_records', num_records)
        object.__setattr__(self, 'num_classes', num_classes)
        object.__setattr__(
            self, 'avg_class_size',
            num_records / num_classes if num_classes else 0.0
        )

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[int, int]]) -> "Histogram":
        """
        Build a histogram from (size, count) pairs in any order.

        Pairs with the same size are merged; pairs with count 0 are dropped.
        """
        merged: Dict[int, int] = {}
        for size, count in pairs:
            if count:
                merged[int(size)] = merged.get(int(size), 0) + int(count)
        return cls(tuple(sorted(merged.items())))

    @classmethod
    def from_class_sizes(cls, sizes: Iterable[int]) -> "Histogram":
        """Build a histogram from the size of every equivalence class."""
        return cls(tuple(sorted(Counter(int(s) for s in sizes).items())))

    @property
    def is_empty(self) -> bool:
        return not self.entries

    @property
    def min_class_size(self) -> int:
        return self.entries[0][0] if self.entries else 0

    @property
    def max_class_size(self) -> int:
        return self.entries[-1][0] if self.entries else 0

    def count_of_size(self, size: int) -> int:
        """Number of classes with exactly ``size`` records."""
        for s, count in self.entries:
            if s == size:
                return count
            if s > size:
                break
        return 0

    @property
    def c1(self) -> int:
        """Number of sample-unique classes."""
        return self.count_of_size(1)

    @property
    def c2(self) -> int:
        return self.count_of_size(2)

    def to_frame(self) -> pd.DataFrame:
        """
        Tabular view of the histogram.

        Returns:
            DataFrame with columns size, count, records and fraction_of_records
        """
        frame = pd.DataFrame(list(self.entries), columns=['size', 'count'])
        frame['records'] = frame['size'] * frame['count']
        total = self.num_records or 1
        frame['fraction_of_records'] = frame['records'] / total
        return frame

    def to_dict(self) -> Dict:
        return {
            'entries': [list(e) for e in self.entries],
            'num_records': self.num_records,
            'num_classes': self.num_classes,
            'avg_class_size': self.avg_class_size,
        }

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)


def group_rows(
    table: TableAccessor,
    columns: Sequence[int],
    token: CancellationToken,
    progress: ProgressPhase,
    include_outliers: bool = False
) -> Dict[Tuple[str, ...], int]:
    """
    Count the records of every distinct projection.

    Args:
        table: Source table
        columns: Column indices forming the projection
        token: Polled once per row
        progress: Receives the fraction of rows scanned
        include_outliers: Group outlier rows too

    Returns:
        Dict mapping each projection to its number of records
    """
    groups: Dict[Tuple[str, ...], int] = {}
    num_rows = table.num_rows()

    for row, projection in enumerate(table.rows(columns)):
        token.check()
        progress.update(row / num_rows)
        if not include_outliers and table.is_outlier(row, columns):
            continue
        groups[projection] = groups.get(projection, 0) + 1

    return groups


def build_histogram(
    table: TableAccessor,
    quasi_identifiers: Iterable[str],
    token: Optional[CancellationToken] = None,
    progress: Optional[ProgressPhase] = None,
    include_outliers: bool = False
) -> Histogram:
    """
    Group a table by its quasi-identifiers and reduce to a size histogram.

    The row scan writes the first 80% of the progress phase and the
    regrouping pass the remaining 20%. The cancellation token is polled at
    every iteration of both loops.

    Args:
        table: Table to analyse
        quasi_identifiers: Attribute names forming the projection
        token: Cancellation token (a fresh one if omitted)
        progress: Progress phase (a detached one if omitted)
        include_outliers: Keep suppressed rows in the grouping

    Returns:
        Histogram of equivalence class sizes; empty for an empty table

    Raises:
        InvalidArgumentError: If the quasi-identifiers do not fit the table
        ComputationInterrupted: If the token is set during the build

    Example:
        >>> histogram = build_histogram(table, ['age', 'zip'])
        >>> histogram.avg_class_size
    """
    token = token or CancellationToken()
    progress = progress or detached_phase()
    names, columns = resolve_quasi_identifiers(table, quasi_identifiers)

    groups = group_rows(table, columns, token, progress.sub(0.0, 0.8), include_outliers)

    regroup = progress.sub(0.8, 1.0)
    sizes: Dict[int, int] = {}
    num_groups = len(groups)
    for index, count in enumerate(groups.values()):
        token.check()
        regroup.update(index / num_groups)
        sizes[count] = sizes.get(count, 0) + 1
    token.check()
    progress.complete()

    histogram = Histogram(tuple(sorted(sizes.items())))
    logger.info(f"Histogram over {names}: {histogram.num_records} records "
                f"in {histogram.num_classes} classes")
    return histogram


def equivalence_class_sizes(
    table: TableAccessor,
    quasi_identifiers: Iterable[str],
    token: Optional[CancellationToken] = None
) -> List[int]:
    """
    Size of the equivalence class of every row, in row order.

    Outlier rows are included in the grouping so that every row gets a size.

    Args:
        table: Table to analyse
        quasi_identifiers: Attribute names forming the projection
        token: Cancellation token (a fresh one if omitted)

    Returns:
        List with one class size per row
    """
    token = token or CancellationToken()
    _, columns = resolve_quasi_identifiers(table, quasi_identifiers)
    groups = group_rows(table, columns, token, detached_phase(), include_outliers=True)

    sizes = []
    for projection in table.rows(columns):
        token.check()
        sizes.append(groups[projection])
    return sizes
