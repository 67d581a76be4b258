"""
Filter Compiler

Builds a typed, immutable FilterSet from loosely typed query parameters.
Only allow-listed fields are accepted; other keys are ignored so that newer
clients can send parameters this server does not know yet. A FilterSet is
always a conjunction of equality predicates.
"""

from dataclasses import dataclass
from typing import Dict, Iterator, Mapping, Optional, Tuple

from src.analytics.columns import LogicalField

FILTERABLE_FIELDS: Tuple[LogicalField, ...] = (
    LogicalField.PATH,
    LogicalField.REFERRER,
    LogicalField.DEVICE_MODEL,
    LogicalField.DEVICE_TYPE,
    LogicalField.COUNTRY,
    LogicalField.BROWSER_NAME,
    LogicalField.BROWSER_VERSION,
)


@dataclass(frozen=True)
class FilterSet:
    """
    Equality filters keyed by logical field.
    
    Predicates are kept in ``FILTERABLE_FIELDS`` order so that two FilterSets
    with the same content compare (and hash) equal.
    """
    
    predicates: Tuple[Tuple[LogicalField, str], ...] = ()
    
    def __post_init__(self):
        seen = set()
        for field, value in self.predicates:
            if field not in FILTERABLE_FIELDS:
                raise ValueError(f"{field!r} is not a filterable field")
            if field in seen:
                raise ValueError(f"Duplicate filter for {field.value}")
            if not isinstance(value, str) or value == "":
                raise ValueError(f"Filter value for {field.value} must be a non-empty string")
            seen.add(field)
        ordered = tuple(sorted(self.predicates, key=lambda p: FILTERABLE_FIELDS.index(p[0])))
        object.__setattr__(self, "predicates", ordered)
    
    def __iter__(self) -> Iterator[Tuple[LogicalField, str]]:
        return iter(self.predicates)
    
    def __len__(self) -> int:
        return len(self.predicates)
    
    def __contains__(self, field: object) -> bool:
        return any(f == field for f, _ in self.predicates)
    
    def get(self, field: LogicalField) -> Optional[str]:
        for f, value in self.predicates:
            if f == field:
                return value
        return None
    
    def to_dict(self) -> Dict[str, str]:
        """Wire-named mapping, e.g. ``{"browserName": "Chrome"}``."""
        return {field.value: value for field, value in self.predicates}


def compile_filters(raw: Mapping[str, Optional[str]]) -> FilterSet:
    """
    Compile request parameters into a FilterSet.
    
    Unknown keys are ignored. Empty and missing values are equivalent and
    produce no predicate. Values are used verbatim.
    
    Example:
        >>> compile_filters({"path": "", "referrer": "abc"}).to_dict()
        {'referrer': 'abc'}
    """
    predicates = []
    for field in FILTERABLE_FIELDS:
        value = raw.get(field.value)
        if value:
            predicates.append((field, str(value)))
    return FilterSet(tuple(predicates))
