"""Tests for identifier resolution."""

import pytest

from loadmaster_sync.addressing import (
    EXACT_INDEX_SIGIL,
    FlatIdentifier,
    ScopedIdentifier,
    parse_index,
    parse_scoped,
    resolve,
    strip_extension,
)
from loadmaster_sync.utils.errors import ErrorCategory, ParseError


class TestResolve:
    """Tests for flat and scoped resolution."""

    def test_flat_identifier(self):
        """Test flat names resolve to themselves."""
        assert resolve(FlatIdentifier("rewrite-host")) == "rewrite-host"

    def test_scoped_exact_uses_sigil(self):
        """Test exact addressing prefixes the child."""
        assert resolve(ScopedIdentifier("5", "2")) == ("5", f"{EXACT_INDEX_SIGIL}2")

    def test_scoped_exact_differs_from_non_exact(self):
        """Test the two addressing modes resolve differently."""
        exact = resolve(ScopedIdentifier("5", "2", exact=True))
        loose = resolve(ScopedIdentifier("5", "2", exact=False))

        assert exact != loose
        assert loose == ("5", "2")

    def test_external_form(self):
        """Test the import/state form of scoped identifiers."""
        assert ScopedIdentifier("5", "2").to_external() == "5/2"
        assert FlatIdentifier("a.conf").to_external() == "a.conf"


class TestParse:
    """Tests for parsing externally supplied identifiers."""

    def test_parse_scoped(self):
        """Test a well-formed pair."""
        scoped = parse_scoped("7/12")

        assert scoped.parent == "7"
        assert scoped.child == "12"
        assert scoped.exact is True

    @pytest.mark.parametrize("external_id", ["7", "7/", "/12", "7/12/3", "", " / "])
    def test_parse_scoped_malformed(self, external_id):
        """Test malformed pairs are rejected without partial resolution."""
        with pytest.raises(ParseError) as exc_info:
            parse_scoped(external_id)

        assert exc_info.value.category == ErrorCategory.PARSE

    def test_parse_index(self):
        """Test numeric indexes."""
        assert parse_index("42") == 42
        assert parse_index(" 3 ") == 3

    @pytest.mark.parametrize("value", ["", "abc", "-1", "1.5"])
    def test_parse_index_malformed(self, value):
        """Test non-numeric indexes are rejected."""
        with pytest.raises(ParseError):
            parse_index(value)


class TestStripExtension:
    """Tests for blob lookup names."""

    def test_strips_one_extension(self):
        assert strip_extension("rules.conf") == "rules"
        assert strip_extension("archive.tar.gz") == "archive.tar"

    def test_without_extension(self):
        assert strip_extension("rules") == "rules"
