"""Group-by / aggregate primitive used by every metric calculator.

Aggregations are plain typed specs rather than expression trees:

    group_by(tasks, key=lambda t: t.status.value, aggregations={
        "totalActual": sum_of(lambda t: t.actual_hours),
        "avgVariance": conditional_average(
            lambda t: t.has_time_tracking,
            lambda t: t.actual_hours - t.estimated_hours,
        ),
    })

Sums and averages skip ``None`` values; a conditional average only counts
items that pass its predicate, in numerator and denominator alike. An
average over nothing is ``None``, never NaN.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Hashable, Iterable, List, Optional, TypeVar

T = TypeVar("T")

ValueFn = Callable[[Any], Optional[float]]
Predicate = Callable[[Any], bool]


class AggregationKind(Enum):
    COUNT = "count"
    SUM = "sum"
    AVERAGE = "average"
    CONDITIONAL_AVERAGE = "conditional_average"


@dataclass(frozen=True)
class Aggregation:
    """A named reduction applied to each group."""
    kind: AggregationKind
    value: Optional[ValueFn] = None
    predicate: Optional[Predicate] = None


def count() -> Aggregation:
    return Aggregation(AggregationKind.COUNT)


def sum_of(value: ValueFn) -> Aggregation:
    return Aggregation(AggregationKind.SUM, value=value)


def average_of(value: ValueFn) -> Aggregation:
    return Aggregation(AggregationKind.AVERAGE, value=value)


def conditional_average(predicate: Predicate, value: ValueFn) -> Aggregation:
    return Aggregation(AggregationKind.CONDITIONAL_AVERAGE, value=value, predicate=predicate)


@dataclass
class _Accumulator:
    spec: Aggregation
    total: float = 0.0
    n: int = 0

    def add(self, item: Any) -> None:
        kind = self.spec.kind
        if kind == AggregationKind.COUNT:
            self.n += 1
            return
        if kind == AggregationKind.CONDITIONAL_AVERAGE and not self.spec.predicate(item):
            return
        value = self.spec.value(item)
        if value is None:
            return
        self.total += value
        self.n += 1

    def result(self) -> Optional[float]:
        kind = self.spec.kind
        if kind == AggregationKind.COUNT:
            return self.n
        if kind == AggregationKind.SUM:
            return self.total
        return self.total / self.n if self.n else None


@dataclass
class Bucket:
    """One group: its key, member count and aggregated fields."""
    key: Any
    count: int = 0
    values: Dict[str, Any] = field(default_factory=dict)

    def __getitem__(self, name: str) -> Any:
        return self.values[name]

    def get(self, name: str, default: Any = None) -> Any:
        return self.values.get(name, default)

    def to_dict(self, key_name: str = "key", count_name: str = "count") -> Dict[str, Any]:
        data = {key_name: self.key, count_name: self.count}
        data.update(self.values)
        return data


def group_by(
    items: Iterable[T],
    key: Callable[[T], Hashable],
    aggregations: Optional[Dict[str, Aggregation]] = None,
    sort_key: Optional[Callable[[Bucket], Any]] = None,
    reverse: bool = False,
) -> List[Bucket]:
    """Group ``items`` by ``key`` and reduce each group.

    Buckets come out in order of first appearance unless ``sort_key`` is
    given. The input is consumed once and not modified.
    """
    aggregations = aggregations or {}
    groups: Dict[Hashable, Dict[str, _Accumulator]] = {}
    counts: Dict[Hashable, int] = {}

    for item in items:
        k = key(item)
        if k not in groups:
            groups[k] = {name: _Accumulator(spec) for name, spec in aggregations.items()}
            counts[k] = 0
        counts[k] += 1
        for acc in groups[k].values():
            acc.add(item)

    buckets = [
        Bucket(
            key=k,
            count=counts[k],
            values={name: acc.result() for name, acc in accs.items()},
        )
        for k, accs in groups.items()
    ]
    if sort_key is not None:
        buckets.sort(key=sort_key, reverse=reverse)
    return buckets
