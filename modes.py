"""
Operation modes: how much the assistant may do without asking.
"""

from enum import Enum


class OperationMode(str, Enum):
    READ_ONLY = "readonly"
    INTERACTIVE = "interactive"
    AUTONOMOUS = "autonomous"

    def allows_writes(self) -> bool:
        return self is not OperationMode.READ_ONLY

    def requires_confirmation(self) -> bool:
        return self is OperationMode.INTERACTIVE

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]

    def __str__(self) -> str:
        return self.value


_DESCRIPTIONS = {
    OperationMode.READ_ONLY: "Somente leitura: nenhuma modificação é permitida",
    OperationMode.INTERACTIVE: "Interativo: pede confirmação antes de modificar",
    OperationMode.AUTONOMOUS: "Autônomo: executa modificações automaticamente",
}

_ALIASES = {
    "readonly": OperationMode.READ_ONLY,
    "read-only": OperationMode.READ_ONLY,
    "read_only": OperationMode.READ_ONLY,
    "interactive": OperationMode.INTERACTIVE,
    "autonomous": OperationMode.AUTONOMOUS,
    "auto": OperationMode.AUTONOMOUS,
}


def parse_mode(value: str) -> OperationMode:
    """Parse a mode name; anything unrecognized falls back to interactive."""
    return _ALIASES.get((value or "").strip().lower(), OperationMode.INTERACTIVE)


def is_valid_mode(value: str) -> bool:
    return (value or "").strip().lower() in _ALIASES
