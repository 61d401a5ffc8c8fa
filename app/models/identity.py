from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True, slots=True)
class Authenticated:
    principal: str

    @property
    def is_authenticated(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class Anonymous:
    reason: str = "not signed in"

    @property
    def is_authenticated(self) -> bool:
        return False


AuthResult = Union[Authenticated, Anonymous]


__all__ = ["Anonymous", "AuthResult", "Authenticated"]
