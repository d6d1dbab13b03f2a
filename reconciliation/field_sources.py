"""Field-source chain resolution for sync_result rows.

Each output column has an ordered chain of sources. The first source that
yields a present, non-null value wins; a chain that yields nothing gives None.
Resolution is a pure function of the chain and the (optional) provided and
current rows, so one output row can mix values from both sides and fixed
defaults.
"""
from typing import Any, Optional, Sequence

from validation.config import FieldSource

Row = dict[str, Any]


def resolve_source(source: FieldSource, provided: Optional[Row], current: Optional[Row]) -> Any:
    """Value a single source yields, or None."""
    if source.source == 'provided_data':
        return provided.get(source.field) if provided is not None else None
    if source.source == 'current_data':
        return current.get(source.field) if current is not None else None
    return source.value


def resolve_field(chain: Sequence[FieldSource], provided: Optional[Row], current: Optional[Row]) -> Any:
    """Walk the chain in priority order and return the first non-null value."""
    for source in chain:
        value = resolve_source(source, provided, current)
        if value is not None:
            return value
    return None


def resolve_row(
    chains: dict[str, Sequence[FieldSource]],
    provided: Optional[Row],
    current: Optional[Row],
) -> Row:
    """Resolve every output column independently, in chain-dict order."""
    return {column: resolve_field(chain, provided, current) for column, chain in chains.items()}
