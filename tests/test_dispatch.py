"""Tests for the OPTIONAL flag dispatch table."""
import pytest
from unittest.mock import patch

from postsetup import dispatch
from postsetup.dispatch import DISPATCH_TABLE, lookup, validate_dispatch_table
from postsetup.handlers import HANDLERS, HandlerKind


def test_every_kind_has_one_flag():
    """Test each handler kind is reachable from exactly one flag."""
    assert sorted(DISPATCH_TABLE.values()) == sorted(HandlerKind)


def test_flag_names():
    """Test the flag names used by existing configuration files."""
    assert set(DISPATCH_TABLE) == {
        "ENABLE_ANSIBLE_USER",
        "ENABLE_WIREGUARD",
        "ENABLE_TAILSCALE",
        "INSTALL_COMMON_TOOLS",
        "ENABLE_FIREWALL",
        "ENABLE_FAIL2BAN",
        "HARDEN_SSH",
        "INSTALL_DOCKER",
    }


def test_lookup_known_flag():
    """Test a mapped flag returns its handler."""
    assert lookup("HARDEN_SSH") is HANDLERS[HandlerKind.SSH_HARDENING]


def test_lookup_unknown_flag():
    """Test an unmapped flag returns None."""
    assert lookup("ENABLE_KUBERNETES") is None


def test_table_is_read_only():
    """Test the table cannot be changed at runtime."""
    with pytest.raises(TypeError):
        DISPATCH_TABLE["ENABLE_KUBERNETES"] = HandlerKind.DOCKER


def test_validate_rejects_unimplemented_kind():
    """Test a kind without an implementation is caught."""
    partial_handlers = {k: v for k, v in HANDLERS.items() if k is not HandlerKind.DOCKER}
    with patch.object(dispatch, "HANDLERS", partial_handlers):
        with pytest.raises(RuntimeError, match="unimplemented=\\['docker'\\]"):
            validate_dispatch_table()


def test_validate_rejects_unmapped_kind():
    """Test a kind without a flag is caught."""
    table = {k: v for k, v in DISPATCH_TABLE.items() if v is not HandlerKind.TAILSCALE}
    with patch.object(dispatch, "DISPATCH_TABLE", table):
        with pytest.raises(RuntimeError, match="unmapped=\\['tailscale'\\]"):
            validate_dispatch_table()


def test_validate_rejects_duplicate_flag_target():
    """Test two flags pointing at one handler are caught."""
    table = dict(DISPATCH_TABLE, ENABLE_UFW=HandlerKind.FIREWALL)
    with patch.object(dispatch, "DISPATCH_TABLE", table):
        with pytest.raises(RuntimeError, match="duplicated=\\['firewall'\\]"):
            validate_dispatch_table()
