"""
Property-based tests for the Host Validator.

Covers canonical hostname normalization, IDNA handling, IP literals, and the
field parsers used by the admin commands.
"""

import string

import idna
import pytest
from hypothesis import given, settings, assume
from hypothesis import strategies as st

from dns_failover.enums import HostValidationErrorCode
from dns_failover.exceptions import ValidationError
from dns_failover.host_validator import MAX_HOSTNAME_LENGTH, HostValidator


@st.composite
def ascii_hostname_strategy(draw) -> str:
    labels = draw(st.lists(
        st.text(alphabet=string.ascii_letters + string.digits, min_size=1, max_size=12),
        min_size=2,
        max_size=4,
    ))
    return ".".join(labels)


@st.composite
def unicode_hostname_strategy(draw) -> str:
    sld = draw(st.sampled_from(["münchen", "bücher", "例子", "пример", "café"]))
    tld = draw(st.sampled_from(["com", "net", "org"]))
    return f"{sld}.{tld}"


class TestCanonicalFormProperty:
    """Valid hostnames come out lowercase and ASCII."""

    @given(host=ascii_hostname_strategy())
    @settings(max_examples=100)
    def test_ascii_hosts_are_lowercased(self, host):
        result = HostValidator().validate(host)
        assert result.valid
        assert result.canonical_host == host.lower()

    @given(host=ascii_hostname_strategy(), padding=st.sampled_from(["", " ", "\t", "  "]))
    @settings(max_examples=50)
    def test_surrounding_whitespace_and_trailing_dot_ignored(self, host, padding):
        validator = HostValidator()
        assert validator.require_host(f"{padding}{host}.{padding}") == host.lower()

    @given(host=unicode_hostname_strategy())
    @settings(max_examples=30)
    def test_unicode_hosts_are_idna_encoded(self, host):
        canonical = HostValidator().require_host(host.upper())
        assert canonical.isascii()
        assert canonical == idna.encode(host, uts46=True).decode("ascii")

    @given(host=ascii_hostname_strategy())
    @settings(max_examples=50)
    def test_normalization_is_idempotent(self, host):
        validator = HostValidator()
        once = validator.require_host(host)
        assert validator.require_host(once) == once

    @given(ip=st.one_of(st.ip_addresses(v=4), st.ip_addresses(v=6)))
    @settings(max_examples=50)
    def test_ip_literals_accepted(self, ip):
        result = HostValidator().validate(str(ip))
        assert result.valid
        assert result.canonical_host == str(ip)


class TestRejectionProperty:
    """Invalid input is rejected with a structured, localized error."""

    @given(blank=st.sampled_from(["", " ", "\t\n"]))
    @settings(max_examples=10)
    def test_empty_input(self, blank):
        result = HostValidator().validate(blank)
        assert not result.valid
        assert result.error.code == HostValidationErrorCode.EMPTY_INPUT

    @given(
        host=ascii_hostname_strategy(),
        bad=st.sampled_from(list("!@#$%^&*()+=[]{}|\\:;\"'<>,?/`~")),
    )
    @settings(max_examples=100)
    def test_forbidden_characters(self, host, bad):
        assume(len(host) > 1)
        middle = len(host) // 2
        result = HostValidator().validate(host[:middle] + bad + host[middle:])
        # A colon can turn the input into an IPv6 literal only if it parses as one
        if result.valid:
            assert bad == ":"
            return
        assert result.error.code == HostValidationErrorCode.FORBIDDEN_CHARS

    def test_too_long(self):
        host = ".".join(["a" * 60] * 5)
        assert len(host) > MAX_HOSTNAME_LENGTH
        result = HostValidator().validate(host)
        assert not result.valid
        assert result.error.code == HostValidationErrorCode.TOO_LONG

    def test_require_host_raises_localized(self):
        with pytest.raises(ValidationError) as exc_info:
            HostValidator(language="zh").require_host("")
        assert exc_info.value.code == HostValidationErrorCode.EMPTY_INPUT.value
        assert exc_info.value.message == "域名为空"


class TestFieldParserProperty:
    """Admin field parsers accept exactly their domain."""

    @given(value=st.integers(min_value=0, max_value=10**9))
    @settings(max_examples=50)
    def test_parse_int_accepts_non_negative(self, value):
        assert HostValidator().parse_int(f" {value} ", "weight") == value

    @given(value=st.integers(max_value=-1))
    @settings(max_examples=30)
    def test_parse_int_rejects_negative(self, value):
        with pytest.raises(ValidationError) as exc_info:
            HostValidator().parse_int(str(value), "weight")
        assert exc_info.value.code == "negative"

    @given(value=st.text(alphabet="abc.-x", min_size=1, max_size=6))
    @settings(max_examples=30)
    def test_parse_int_rejects_text(self, value):
        assume(value.strip("-") != "")
        with pytest.raises(ValidationError) as exc_info:
            HostValidator().parse_int(value, "sort_order")
        assert exc_info.value.code == "invalid_integer"

    @given(port=st.integers(min_value=-100, max_value=70000))
    @settings(max_examples=100)
    def test_parse_port_range(self, port):
        validator = HostValidator()
        if 1 <= port <= 65535:
            assert validator.parse_port(str(port)) == port
        else:
            with pytest.raises(ValidationError):
                validator.parse_port(str(port))

    @given(value=st.sampled_from(["true", "1", "YES", "on", "false", "0", "No", "off"]))
    @settings(max_examples=20)
    def test_parse_bool(self, value):
        expected = value.lower() in ("true", "1", "yes", "on")
        assert HostValidator().parse_bool(value, "is_ban") is expected

    def test_parse_bool_rejects_other(self):
        with pytest.raises(ValidationError):
            HostValidator().parse_bool("maybe", "is_ban")

    @given(value=st.sampled_from(["a", "A", " cname ", "CNAME"]))
    @settings(max_examples=10)
    def test_parse_record_type(self, value):
        assert HostValidator().parse_record_type(value) in ("A", "CNAME")

    def test_parse_record_type_rejects_other(self):
        with pytest.raises(ValidationError) as exc_info:
            HostValidator().parse_record_type("AAAA")
        assert exc_info.value.code == "invalid_record_type"

    @given(ip=st.one_of(st.ip_addresses(v=4), st.ip_addresses(v=6)))
    @settings(max_examples=30)
    def test_parse_ip(self, ip):
        validator = HostValidator()
        assert validator.parse_ip(str(ip)) == str(ip)
        assert validator.parse_ip("  ") == ""
        with pytest.raises(ValidationError):
            validator.parse_ip("not-an-ip")
