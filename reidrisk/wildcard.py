"""
Sample risk when suppressed values act as wildcards.

After local suppression a cell may hold a wildcard token (e.g. "*") instead
of its value. An attacker cannot tell which value was removed, so a record
with a wildcard is indistinguishable from every record that agrees with it on
the remaining attributes. Two tuples match when, at every position, the
values are equal or either of them is the wildcard. The size of a class is
then the number of records matching it, and risks are recomputed from these
merged sizes.

Matching uses a trie over the quasi-identifier values: each new class is
first matched against all classes already in the trie (visiting every
branch compatible under wildcard semantics), then inserted.

Author: James Weatherhead, UTMB (jacweath@utmb.edu)
"""

import logging
import math
from typing import Dict, Iterable, List, Optional, Tuple

from .config import validate_threshold
from .errors import InvalidArgumentError, TrieConsistencyError
from .histogram import group_rows
from .progress import CancellationToken, ProgressPhase, detached_phase
from .table import TableAccessor, resolve_quasi_identifiers

# Configure logging
logger = logging.getLogger(__name__)

Projection = Tuple[str, ...]


class _Node:
    """Trie node. Inner nodes have children, leaves reference one class."""

    __slots__ = ('value', 'children', 'projection')

    def __init__(self, value: str, projection: Optional[Projection] = None):
        self.value = value
        self.children: List["_Node"] = []
        self.projection = projection


def size_threshold(threshold: float) -> float:
    """
    Smallest class size whose risk does not exceed the threshold.

    1/threshold rounded down, plus one when rounding down would overshoot the
    threshold by at least 1% of it. A threshold of 0 puts every class at risk.
    """
    if threshold == 0:
        return math.inf
    size = 1.0 / threshold
    floor = math.floor(size)
    if (1.0 / floor) - (1.0 / size) >= 0.01 * threshold:
        floor += 1
    return floor


class WildcardMatcher:
    """
    Trie merging class sizes under wildcard semantics.

    Attributes:
        wildcard (str): Token matching any value
        frequencies (Dict): Original number of records per class
        merged (Dict): Number of records matching each class
    """

    def __init__(self, wildcard: str, token: Optional[CancellationToken] = None):
        self.wildcard = wildcard
        self.token = token or CancellationToken()
        self.frequencies: Dict[Projection, int] = {}
        self.merged: Dict[Projection, int] = {}
        self._root: List[_Node] = []

    def insert(self, projection: Projection, count: int) -> None:
        """
        Add a class: merge its count with every matching class, then index it.

        Raises:
            TrieConsistencyError: If an identical class was inserted before
        """
        if not projection:
            raise InvalidArgumentError("Cannot index an empty projection")
        self.frequencies[projection] = count
        self.merged[projection] = count
        self._add(projection, self._root, 0)
        self._index(projection, self._root, 0)

    def _matches(self, node_value: str, value: str) -> bool:
        return node_value == self.wildcard or value == self.wildcard or node_value == value

    def _add(self, projection: Projection, nodes: List[_Node], depth: int) -> None:
        is_leaf_level = depth == len(projection) - 1
        value = projection[depth]
        for node in nodes:
            self.token.check()
            if not self._matches(node.value, value):
                continue
            if is_leaf_level:
                self.merged[projection] += self.frequencies[node.projection]
                self.merged[node.projection] += self.frequencies[projection]
            else:
                self._add(projection, node.children, depth + 1)

    def _index(self, projection: Projection, nodes: List[_Node], depth: int) -> None:
        is_leaf_level = depth == len(projection) - 1
        value = projection[depth]
        for node in nodes:
            self.token.check()
            if node.value == value:
                if is_leaf_level:
                    raise TrieConsistencyError(
                        f"Class {projection} collides with {node.projection} in the wildcard trie"
                    )
                self._index(projection, node.children, depth + 1)
                return

        if is_leaf_level:
            nodes.append(_Node(value, projection))
        else:
            node = _Node(value)
            nodes.append(node)
            self._index(projection, node.children, depth + 1)


class SampleWildcardRisk:
    """
    Re-identification risk with wildcard matching of suppressed values.

    Suppression is recognised by the wildcard alone: outlier flags are not
    consulted, and classes whose every value is the wildcard are ignored. All
    measures are 0 when no records remain.

    Attributes:
        threshold (float): Risk threshold in [0, 1]
        size_threshold (float): Classes smaller than this are at risk
        wildcard (str): Wildcard token
        highest_risk (float): Largest 1 / merged class size
        average_risk (float): Mean risk over records
        records_at_risk (float): Share of records in classes below size_threshold

    Example:
        >>> risk = SampleWildcardRisk(table, ['age', 'zip'], threshold=0.2)
        >>> risk.highest_risk, risk.records_at_risk
    """

    def __init__(
        self,
        table: TableAccessor,
        quasi_identifiers: Iterable[str],
        threshold: float,
        wildcard: str = "*",
        token: Optional[CancellationToken] = None,
        progress: Optional[ProgressPhase] = None
    ):
        """
        Compute wildcard-aware risks of a table.

        Grouping takes 0-30% of the progress phase, merging 30-90% and the
        final evaluation 90-100%.

        Raises:
            InvalidArgumentError: On a bad threshold, missing wildcard or
                unknown quasi-identifier
            TrieConsistencyError: If the trie detects a duplicate class
            ComputationInterrupted: If the token is set
        """
        if not wildcard:
            raise InvalidArgumentError("Wildcard must not be empty")
        self.threshold = validate_threshold(threshold)
        self.size_threshold = size_threshold(self.threshold)
        self.wildcard = wildcard
        token = token or CancellationToken()
        progress = progress or detached_phase()
        names, columns = resolve_quasi_identifiers(table, quasi_identifiers)

        groups = group_rows(table, columns, token, progress.sub(0.0, 0.3),
                            include_outliers=True)
        classes = [(projection, count) for projection, count in groups.items()
                   if not all(value == wildcard for value in projection)]

        matcher = WildcardMatcher(wildcard, token)
        merging = progress.sub(0.3, 0.9)
        num_records = 0
        for index, (projection, count) in enumerate(classes):
            token.check()
            merging.update(index / len(classes))
            matcher.insert(projection, count)
            num_records += count

        evaluation = progress.sub(0.9, 1.0)
        total_risk = 0.0
        highest_risk = 0.0
        num_at_risk = 0
        for index, (projection, count) in enumerate(classes):
            token.check()
            evaluation.update(index / len(classes))
            size = matcher.merged[projection]
            risk = 1.0 / size
            highest_risk = max(highest_risk, risk)
            total_risk += risk * count
            if size < self.size_threshold:
                num_at_risk += count
        progress.complete()

        self.num_records = num_records
        self.highest_risk = highest_risk if num_records else 0.0
        self.average_risk = total_risk / num_records if num_records else 0.0
        self.records_at_risk = num_at_risk / num_records if num_records else 0.0

        logger.info(f"Wildcard risk over {names}: highest={self.highest_risk:.4f}, "
                    f"average={self.average_risk:.4f}, at risk={self.records_at_risk:.4f}")

    def to_dict(self) -> Dict:
        return {
            'threshold': self.threshold,
            'wildcard': self.wildcard,
            'highest_risk': self.highest_risk,
            'average_risk': self.average_risk,
            'records_at_risk': self.records_at_risk,
        }
