"""Tests for configuration file parsing."""
import pytest

from postsetup.config import ConfigFile, Declaration, Tier, load_config, parse_config
from postsetup.errors import ConfigNotFound

SAMPLE = """\
# post-setup configuration
STANDARD ALLOW_SSH_PORT=22
OPTIONAL ENABLE_FIREWALL=true
STANDARD firewall
DISABLED INSTALL_DOCKER=true
OPTIONAL ENABLE_FAIL2BAN=false
"""


class TestParseConfig:
    """Tests for tier classification."""

    def test_tiers_keep_file_order(self):
        """Test each tier view keeps the order of the file."""
        config = parse_config(SAMPLE)

        assert [d.text for d in config.standard] == ["ALLOW_SSH_PORT=22", "firewall"]
        assert [d.text for d in config.optional] == ["ENABLE_FIREWALL=true", "ENABLE_FAIL2BAN=false"]
        assert [d.text for d in config.disabled] == ["INSTALL_DOCKER=true"]

    def test_declarations_record_tier_and_line(self):
        """Test declarations carry their tier and source line number."""
        config = parse_config(SAMPLE)

        assert config.declarations[0] == Declaration(Tier.STANDARD, "ALLOW_SSH_PORT=22", 2)
        assert config.declarations[3] == Declaration(Tier.DISABLED, "INSTALL_DOCKER=true", 5)

    def test_comment_and_blank_remainders_discarded(self):
        """Test commented-out and empty declarations are dropped."""
        config = parse_config("STANDARD # FOO=bar\nOPTIONAL    \nDISABLED #ENABLE_X=true\n\n")

        assert config.declarations == ()

    def test_untiered_lines_ignored(self):
        """Test lines without a tier token are not declarations."""
        config = parse_config("FOO=bar\nSTANDARDFOO=bar\n standard FOO=bar\nSTANDARD\n")

        assert config.declarations == ()

    def test_any_whitespace_after_token(self):
        """Test the tier token may be followed by tabs or several spaces."""
        config = parse_config("STANDARD\tFOO=bar\nOPTIONAL   BAR=true  \n")

        assert [d.text for d in config.declarations] == ["FOO=bar", "BAR=true"]

    def test_shape_not_validated(self):
        """Test the loader accepts remainders that are not assignments."""
        config = parse_config("STANDARD run apt-get update\n")

        assert config.standard[0].text == "run apt-get update"

    def test_config_is_immutable(self):
        """Test the parsed configuration cannot be modified."""
        config = parse_config(SAMPLE)

        with pytest.raises(AttributeError):
            config.declarations = ()
        assert isinstance(config.declarations, tuple)


class TestLoadConfig:
    """Tests for reading the configuration file."""

    def test_load_config(self, write_config):
        """Test loading a configuration file from disk."""
        path = write_config(SAMPLE)

        config = load_config(path)

        assert isinstance(config, ConfigFile)
        assert config.path == path
        assert len(config.declarations) == 5

    def test_load_config_missing(self, tmp_path):
        """Test a missing file raises ConfigNotFound."""
        path = tmp_path / "missing.cfg"

        with pytest.raises(ConfigNotFound, match="not found") as exc_info:
            load_config(path)
        assert exc_info.value.path == path

    def test_load_config_directory(self, tmp_path):
        """Test an unreadable path raises ConfigNotFound."""
        with pytest.raises(ConfigNotFound):
            load_config(tmp_path)

    def test_load_config_not_utf8(self, tmp_path):
        """Test a file that is not valid UTF-8 raises ConfigNotFound with the reason."""
        path = tmp_path / "post-setup.cfg"
        path.write_bytes(b"STANDARD ALLOW_SSH_PORT=\xff\xfe\n")

        with pytest.raises(ConfigNotFound, match="could not be read") as exc_info:
            load_config(path)
        assert exc_info.value.path == path
