"""Exclusion filter applying glob include/exclude rules to incoming rows."""
from dataclasses import dataclass, field
from typing import Any, Iterable

from shared.log import create_logger
from validation.config import FilterRule

_, log_debug, log_info, _, _ = create_logger("Filter")

Row = dict[str, Any]


@dataclass
class FilterStats:
    """Row counts for one filter pass.

    Attributes:
        original_count: Rows given to the filter
        filtered_count: Rows that survived
        excluded_count: Rows dropped (original_count - filtered_count)
    """
    original_count: int = 0
    filtered_count: int = 0
    excluded_count: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            'original_count': self.original_count,
            'filtered_count': self.filtered_count,
            'excluded_count': self.excluded_count,
        }


@dataclass
class FilterResult:
    """Outcome of a filter pass. The input rows are never mutated.

    Attributes:
        filtered: Rows that survived, in input order
        excluded: Rows that were dropped, in input order
        stats: Counts for observability
    """
    filtered: list[Row] = field(default_factory=list)
    excluded: list[Row] = field(default_factory=list)
    stats: FilterStats = field(default_factory=FilterStats)


class ExclusionFilter:
    """Applies a fixed rule set to rows.

    A row survives when it matches no exclude rule AND, if include rules
    exist, matches at least one include rule. Rules of the same type are
    ORed, so their order does not matter. A null or missing field never
    matches a glob.

    Args:
        rules: Filter rules (globs are compiled once here)
    """

    def __init__(self, rules: Iterable[FilterRule]):
        rules = list(rules)
        self.exclude = [(rule.field, rule.matcher()) for rule in rules if rule.type == 'exclude']
        self.include = [(rule.field, rule.matcher()) for rule in rules if rule.type == 'include']

    def keeps(self, row: Row) -> bool:
        """Return True if the row survives the rule set."""
        for field_name, matcher in self.exclude:
            if matcher.matches(row.get(field_name)):
                return False
        if self.include:
            return any(matcher.matches(row.get(field_name)) for field_name, matcher in self.include)
        return True

    def apply(self, rows: Iterable[Row]) -> FilterResult:
        result = FilterResult()
        for row in rows:
            if self.keeps(row):
                result.filtered.append(row)
            else:
                result.excluded.append(row)
        result.stats = FilterStats(
            original_count=len(result.filtered) + len(result.excluded),
            filtered_count=len(result.filtered),
            excluded_count=len(result.excluded),
        )
        return result


def filter_rows(rows: Iterable[Row], rules: Iterable[FilterRule], table: str = '') -> FilterResult:
    """
    Filter rows through include/exclude glob rules.

    An empty rule list is the identity filter.

    Args:
        rows: Input rows
        rules: Filter rules for the table
        table: Table name, used only for log context

    Returns:
        FilterResult with surviving rows, excluded rows and counts
    """
    rules = list(rules)
    result = ExclusionFilter(rules).apply(rows)
    if rules:
        log_info(
            "Applied data filters",
            table=table,
            rules=len(rules),
            **result.stats.to_dict(),
        )
    else:
        log_debug("No data filters configured", table=table, rows=result.stats.original_count)
    return result
