"""
Property-based tests for the Audit Logger.

Covers both output formats, the minimum level filter, and masking of
credentials in structured data.
"""

import json
from io import StringIO

from hypothesis import given, settings, assume
from hypothesis import strategies as st

from dns_failover.audit_logger import LEVEL_ORDER, AuditLogger
from dns_failover.enums import LogLevel


@st.composite
def component_name_strategy(draw) -> str:
    return draw(st.sampled_from([
        "FailoverEngine", "CandidateSelector", "BanLedger", "Scheduler",
        "Reporter", "TelegramBot", "AdminService", "ProbeBackend",
    ]))


@st.composite
def message_strategy(draw) -> str:
    return draw(st.text(
        alphabet=st.characters(
            whitelist_categories=('L', 'N', 'P', 'S', 'Zs'),
            blacklist_characters='\x00\n\r',
        ),
        min_size=1,
        max_size=120,
    ))


@st.composite
def plain_key_strategy(draw) -> str:
    key = draw(st.text(
        alphabet=st.sampled_from("abcdefghijklmnopqrstuvwxyz_"),
        min_size=1,
        max_size=16,
    ))
    for pattern in AuditLogger.SENSITIVE_KEYS:
        assume(pattern not in key)
    assume(key not in AuditLogger.SENSITIVE_EXACT_KEYS)
    return key


@st.composite
def sensitive_key_strategy(draw) -> str:
    base = draw(st.sampled_from([
        "api_token", "bot_token", "token", "secret", "password",
        "authorization", "backend_key", "credentials",
    ]))
    prefix = draw(st.sampled_from(["", "cloudflare_", "telegram_"]))
    return f"{prefix}{base}"


simple_values = st.one_of(
    st.text(max_size=30),
    st.integers(min_value=-1000, max_value=1000),
    st.booleans(),
    st.none(),
)


class TestOutputFormatProperty:
    """Each entry is written in the configured format(s)."""

    @given(
        level=st.sampled_from(list(LogLevel)),
        component=component_name_strategy(),
        message=message_strategy(),
        data=st.dictionaries(plain_key_strategy(), simple_values, max_size=4),
    )
    @settings(max_examples=100)
    def test_json_line_round_trips_fields(self, level, component, message, data):
        output = StringIO()
        logger = AuditLogger(output_format="json", output_stream=output)

        logger.log(level, component, message, data)

        parsed = json.loads(output.getvalue().strip())
        assert parsed["level"] == level.value
        assert parsed["component"] == component
        assert parsed["message"] == message
        assert parsed["data"] == data
        assert "timestamp" in parsed

    @given(
        level=st.sampled_from(list(LogLevel)),
        component=component_name_strategy(),
        message=message_strategy(),
    )
    @settings(max_examples=100)
    def test_text_line_contains_level_and_component(self, level, component, message):
        output = StringIO()
        logger = AuditLogger(output_format="text", output_stream=output)

        logger.log(level, component, message)

        line = output.getvalue().strip()
        assert level.value.upper() in line
        assert f"[{component}]" in line
        assert message.strip() in line

    @given(message=message_strategy())
    @settings(max_examples=50)
    def test_both_format_writes_two_lines(self, message):
        output = StringIO()
        logger = AuditLogger(output_format="both", output_stream=output)

        logger.log(LogLevel.INFO, "Scheduler", message)

        lines = output.getvalue().splitlines()
        assert len(lines) == 2
        assert json.loads(lines[0])["message"] == message

    def test_invalid_format_rejected(self):
        try:
            AuditLogger(output_format="xml")
        except ValueError:
            return
        raise AssertionError("expected ValueError")


class TestLevelFilterProperty:
    """Entries below the minimum level are dropped."""

    @given(
        min_level=st.sampled_from(list(LogLevel)),
        level=st.sampled_from(list(LogLevel)),
    )
    @settings(max_examples=100)
    def test_filter(self, min_level, level):
        output = StringIO()
        logger = AuditLogger(output_format="json", output_stream=output, min_level=min_level)

        entry = logger.log(level, "Reporter", "digest delivered")

        if LEVEL_ORDER[level] >= LEVEL_ORDER[min_level]:
            assert entry is not None
            assert len(logger.entries) == 1
        else:
            assert entry is None
            assert output.getvalue() == ""
            assert logger.entries == []

    @given(name=st.sampled_from(["debug", "INFO", "Warn", "error"]))
    @settings(max_examples=20)
    def test_from_level_name(self, name):
        logger = AuditLogger.from_level_name(name, output_stream=StringIO())
        assert logger.min_level == LogLevel(name.lower())

    def test_unknown_level_name_falls_back_to_info(self):
        logger = AuditLogger.from_level_name("verbose", output_stream=StringIO())
        assert logger.min_level == LogLevel.INFO


class TestSensitiveMaskingProperty:
    """Credentials never reach the output stream."""

    @given(
        key=sensitive_key_strategy(),
        secret=st.text(
            alphabet=st.sampled_from("ABCDEFGHJKLMNPQRSTUVWXYZ0123456789"),
            min_size=12,
            max_size=40,
        ),
    )
    @settings(max_examples=100)
    def test_sensitive_values_masked(self, key, secret):
        output = StringIO()
        logger = AuditLogger(output_format="both", output_stream=output)

        entry = logger.log(LogLevel.INFO, "TelegramBot", "started", {key: secret, "nested": {key: secret}})

        assert secret not in output.getvalue()
        assert entry.data[key] == AuditLogger.MASK_VALUE
        assert entry.data["nested"][key] == AuditLogger.MASK_VALUE

    @given(data=st.dictionaries(plain_key_strategy(), simple_values, max_size=5))
    @settings(max_examples=100)
    def test_plain_values_untouched(self, data):
        logger = AuditLogger(output_format="json", output_stream=StringIO())
        assert logger.mask_sensitive_data(data) == data

    def test_exact_key_only_matches_whole_name(self):
        logger = AuditLogger(output_stream=StringIO())
        assert logger.is_sensitive_key("key")
        assert logger.is_sensitive_key("KEY")
        assert not logger.is_sensitive_key("monkey")
        assert not logger.is_sensitive_key("forward_domain")

    def test_log_error_adds_error_context(self):
        logger = AuditLogger(output_format="json", output_stream=StringIO())

        entry = logger.log_error(
            "CloudflareClient",
            "update failed",
            error=ValueError("bad content"),
            request_url="https://api.cloudflare.com/client/v4/zones/z/dns_records/r",
            response_status_code=400,
        )

        assert entry.level == LogLevel.ERROR
        assert entry.data["error_type"] == "ValueError"
        assert entry.data["error_message"] == "bad content"
        assert entry.data["response_status_code"] == 400
