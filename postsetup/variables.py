"""Binding of configuration declarations to named values.

Assignments (``KEY=VALUE``) from the STANDARD and OPTIONAL tiers are bound
into a single read-only lookup table before anything runs. A STANDARD
declaration may instead be a directive; directives are classified into a
closed set of actions. Configuration content is trusted: the ``run`` directive
executes its text with host privileges through ``TrustedCommand`` and nothing
else from the file is ever executed. Do not feed this tool configuration from
an untrusted source.
"""
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Iterator, Mapping, Optional, Tuple, Union

import sh

from postsetup.config import ConfigFile, Declaration, Tier
from postsetup.errors import MissingSetting

if TYPE_CHECKING:
    from postsetup.handlers import HandlerKind

TRUE_LITERAL = "true"
RUN_DIRECTIVE = "run"

ASSIGNMENT = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)=(.*)$")


@dataclass(frozen=True)
class Assignment:
    key: str
    value: str


@dataclass(frozen=True)
class HandlerDirective:
    kind: "HandlerKind"


@dataclass(frozen=True)
class TrustedCommand:
    """A raw shell command taken verbatim from the configuration file."""

    command: str

    def __call__(self) -> None:
        sh.bash("-c", self.command)


@dataclass(frozen=True)
class UnknownDirective:
    text: str


StandardAction = Union[Assignment, HandlerDirective, TrustedCommand, UnknownDirective]


class Variables(Mapping):
    """Read-only view of the values bound from the configuration file."""

    def __init__(self, values: Optional[Mapping[str, str]] = None):
        self._values: Dict[str, str] = dict(values or {})

    def __getitem__(self, key: str) -> str:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"Variables({self._values!r})"

    def flag(self, key: str) -> bool:
        """Return True only when ``key`` is bound to the true-literal."""
        return self._values.get(key) == TRUE_LITERAL

    def require(self, key: str) -> str:
        """Return a non-empty value for ``key`` or raise MissingSetting."""
        value = self._values.get(key, "")
        if not value:
            raise MissingSetting(key)
        return value


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def split_assignment(text: str) -> Optional[Tuple[str, str]]:
    """Split ``KEY=VALUE`` on the first ``=``; None if ``text`` is not an assignment."""
    match = ASSIGNMENT.match(text)
    if not match:
        return None
    return match.group(1), _unquote(match.group(2).strip())


def bind_variables(config: ConfigFile) -> Variables:
    """Bind every STANDARD and OPTIONAL assignment; later declarations win."""
    values = {}
    for declaration in config.declarations:
        if declaration.tier is Tier.DISABLED:
            continue
        assignment = split_assignment(declaration.text)
        if assignment:
            key, value = assignment
            values[key] = value
    return Variables(values)


def classify(declaration: Declaration) -> StandardAction:
    """Turn a STANDARD declaration into the action it stands for."""
    from postsetup.handlers import HandlerKind

    assignment = split_assignment(declaration.text)
    if assignment:
        return Assignment(*assignment)

    parts = declaration.text.split(None, 1)
    if len(parts) == 2 and parts[0] == RUN_DIRECTIVE:
        return TrustedCommand(parts[1].strip())

    try:
        return HandlerDirective(HandlerKind(declaration.text))
    except ValueError:
        return UnknownDirective(declaration.text)
