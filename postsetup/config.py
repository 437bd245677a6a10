"""Configuration file parsing.

A configuration file is line oriented. Only lines starting with one of the
tier tokens are read, everything else is ignored::

    STANDARD ALLOW_SSH_PORT=22
    STANDARD firewall
    OPTIONAL ENABLE_FAIL2BAN=true
    DISABLED INSTALL_DOCKER=true
"""
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple, Union

from postsetup.errors import ConfigNotFound

DEFAULT_CONFIG_PATH = Path("./post-setup.cfg")

TIER_LINE = re.compile(r"^(STANDARD|OPTIONAL|DISABLED)\s+(.*)$")


class Tier(str, Enum):
    STANDARD = "STANDARD"
    OPTIONAL = "OPTIONAL"
    DISABLED = "DISABLED"


@dataclass(frozen=True)
class Declaration:
    tier: Tier
    text: str
    line_number: int = 0


@dataclass(frozen=True)
class ConfigFile:
    declarations: Tuple[Declaration, ...] = ()
    path: Optional[Path] = field(default=None, compare=False)

    def by_tier(self, tier: Tier) -> Tuple[Declaration, ...]:
        return tuple(d for d in self.declarations if d.tier is tier)

    @property
    def standard(self) -> Tuple[Declaration, ...]:
        return self.by_tier(Tier.STANDARD)

    @property
    def optional(self) -> Tuple[Declaration, ...]:
        return self.by_tier(Tier.OPTIONAL)

    @property
    def disabled(self) -> Tuple[Declaration, ...]:
        return self.by_tier(Tier.DISABLED)


def parse_config(text: str, path: Optional[Path] = None) -> ConfigFile:
    """Classify every tier line of ``text`` into declarations, keeping file order."""
    declarations = []
    for number, line in enumerate(text.splitlines(), start=1):
        match = TIER_LINE.match(line)
        if not match:
            continue
        remainder = match.group(2).strip()
        if not remainder or remainder.startswith("#"):
            continue
        declarations.append(Declaration(Tier(match.group(1)), remainder, number))
    return ConfigFile(tuple(declarations), path)


def load_config(path: Union[str, Path] = DEFAULT_CONFIG_PATH) -> ConfigFile:
    """Read and parse the configuration file at ``path``."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigNotFound(path) from e
    except UnicodeDecodeError as e:
        raise ConfigNotFound(path, e) from e
    return parse_config(text, path)
