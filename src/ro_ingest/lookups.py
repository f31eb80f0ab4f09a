"""Code → display-name lookup tables for agents and offer categories."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

AGENT_CODES: Mapping[str, str] = MappingProxyType(
    {
        "1": "Sig. Bacco",
        "2": "Renato Bacco",
        "3": "Serena Padrono",
        "4": "Luca De Gaetano",
        "5": "Andrea Zara",
        "6": "Mattia Arata",
        "7": "Arrigo Bussinello",
        "8": "Francesco",
        "P01": "Terapeutico",
    }
)

CATEGORY_CODES: Mapping[str, str] = MappingProxyType(
    {
        "P02": "Benessere",
        "P03": "Grandi impianti",
        "P04": "Privato",
        "P05": "Top Class",
        "P06": "Extra",
        "P07": "Eccezionale",
        "P08": "Residence",
        "P09": "Assistenza",
    }
)


def _freeze(table: Mapping[str, str]) -> Mapping[str, str]:
    return MappingProxyType({str(k): str(v) for k, v in table.items()})


@dataclass(frozen=True)
class CodeLookupTable:
    """Read-only agent/category tables; unmapped codes pass through unchanged."""

    agents: Mapping[str, str] = field(default_factory=lambda: AGENT_CODES)
    categories: Mapping[str, str] = field(default_factory=lambda: CATEGORY_CODES)

    def __post_init__(self) -> None:
        object.__setattr__(self, "agents", _freeze(self.agents))
        object.__setattr__(self, "categories", _freeze(self.categories))

    def agent_name(self, code: str) -> str:
        return self.agents.get(code, code)

    def category_name(self, code: str) -> str:
        return self.categories.get(code, code)

    def agent_code(self, name: str) -> str:
        """Reverse lookup; a name with no code is returned as is."""
        for code, agent in self.agents.items():
            if agent == name:
                return code
        return name

    def category_code(self, name: str) -> str:
        for code, category in self.categories.items():
            if category == name:
                return code
        return name


DEFAULT_LOOKUPS = CodeLookupTable()
