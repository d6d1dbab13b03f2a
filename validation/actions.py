"""Sync action enumeration and its validated mapping to external string codes."""
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from validation.errors import ConfigurationError


class SyncAction(str, Enum):
    ADD = "ADD"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    KEEP = "KEEP"


DEFAULT_ACTION_CODES = {
    SyncAction.ADD: "1",
    SyncAction.UPDATE: "2",
    SyncAction.DELETE: "3",
    SyncAction.KEEP: "9",
}


class ActionCodes:
    """Immutable bidirectional action <-> code table with per-action enablement.

    Args:
        codes: Mapping of every SyncAction to its string code
        enabled: Mapping of SyncAction to export enablement (missing = enabled)

    Raises:
        ConfigurationError: an action is missing a code, or two actions share one
    """

    def __init__(self, codes: Mapping[SyncAction, str], enabled: Mapping[SyncAction, bool] | None = None):
        missing = [action.value for action in SyncAction if action not in codes]
        if missing:
            raise ConfigurationError(f"sync action codes missing for: {missing}")

        by_code: dict[str, SyncAction] = {}
        for action in SyncAction:
            code = codes[action]
            if code in by_code:
                raise ConfigurationError(
                    f"sync action code {code!r} is shared by {by_code[code].value} and {action.value}"
                )
            by_code[code] = action

        enabled = enabled or {}
        self._codes = MappingProxyType({action: codes[action] for action in SyncAction})
        self._actions = MappingProxyType(by_code)
        self._enabled = MappingProxyType({action: bool(enabled.get(action, True)) for action in SyncAction})

    @classmethod
    def defaults(cls) -> "ActionCodes":
        return cls(DEFAULT_ACTION_CODES)

    def code(self, action: SyncAction) -> str:
        return self._codes[action]

    def action(self, code: str) -> SyncAction:
        """Reverse lookup. Raises KeyError for an unknown code."""
        return self._actions[code]

    def is_enabled(self, action: SyncAction) -> bool:
        return self._enabled[action]

    @property
    def enablement(self) -> Mapping[SyncAction, bool]:
        return self._enabled

    def enabled_codes(self, enablement: Mapping[SyncAction, bool] | None = None) -> list[str]:
        """Codes of enabled actions in enum order.

        Args:
            enablement: Optional per-action overrides, merged over the
                configured enablement
        """
        flags = {**self._enabled, **(enablement or {})}
        return [self._codes[action] for action in SyncAction if flags[action]]

    def __repr__(self) -> str:
        pairs = ", ".join(f"{a.value}={c}" for a, c in self._codes.items())
        return f"ActionCodes({pairs})"
