"""Mapping from OPTIONAL flag names to the handlers they enable."""
from types import MappingProxyType
from typing import Mapping, Optional

from postsetup.handlers import HANDLERS, Handler, HandlerKind

DISPATCH_TABLE: Mapping[str, HandlerKind] = MappingProxyType({
    "ENABLE_ANSIBLE_USER": HandlerKind.ADMIN_ACCOUNT,
    "ENABLE_WIREGUARD": HandlerKind.WIREGUARD,
    "ENABLE_TAILSCALE": HandlerKind.TAILSCALE,
    "INSTALL_COMMON_TOOLS": HandlerKind.COMMON_TOOLS,
    "ENABLE_FIREWALL": HandlerKind.FIREWALL,
    "ENABLE_FAIL2BAN": HandlerKind.FAIL2BAN,
    "HARDEN_SSH": HandlerKind.SSH_HARDENING,
    "INSTALL_DOCKER": HandlerKind.DOCKER,
})


def validate_dispatch_table() -> None:
    """Every handler kind needs exactly one flag and one implementation."""
    kinds = list(DISPATCH_TABLE.values())
    duplicated = {kind.value for kind in kinds if kinds.count(kind) > 1}
    unmapped = {kind.value for kind in HandlerKind} - {kind.value for kind in kinds}
    unimplemented = {kind.value for kind in HandlerKind} - {kind.value for kind in HANDLERS}
    if duplicated or unmapped or unimplemented:
        raise RuntimeError(
            f"Invalid dispatch table: duplicated={sorted(duplicated)} "
            f"unmapped={sorted(unmapped)} unimplemented={sorted(unimplemented)}"
        )


def lookup(flag: str) -> Optional[Handler]:
    """Return the handler enabled by ``flag``, or None for unknown flags."""
    kind = DISPATCH_TABLE.get(flag)
    if kind is None:
        return None
    return HANDLERS[kind]


validate_dispatch_table()
