"""
Property-based tests for the pipe-delimited bulk record format.
"""

from hypothesis import given, settings
from hypothesis import strategies as st

import pytest

from dns_failover.db_models import DomainRecord, ForwardRecord
from dns_failover.exceptions import ValidationError
from dns_failover.record_format import HEADER, MIN_FIELDS, format_records, parse_records


label = st.text(alphabet=st.sampled_from("abcdefghijklmnopqrstuvwxyz0123456789"), min_size=1, max_size=10)
hostname = st.builds(lambda a, b: f"{a}.{b}.com", label, label)
field_text = st.text(alphabet=st.sampled_from("abcdefghijklmnopqrstuvwxyz0123456789.-"), max_size=15)


@st.composite
def domain_record_strategy(draw, domain_id: int) -> DomainRecord:
    forwards = []
    names = draw(st.lists(hostname, max_size=4, unique=True))
    for index, name in enumerate(names, start=1):
        forwards.append(ForwardRecord(
            id=domain_id * 100 + index,
            forward_domain=name,
            ip=draw(st.sampled_from(["", "192.0.2.1", "2001:db8::1"])),
            isp=draw(field_text),
            is_ban=draw(st.booleans()),
            ban_time=0,
            weight=draw(st.integers(min_value=0, max_value=100)),
            sort_order=draw(st.integers(min_value=0, max_value=100)),
            record_type=draw(st.sampled_from(["A", "CNAME"])),
            resolve_status="never",
        ))
    return DomainRecord(
        id=domain_id,
        domain=f"d{domain_id}.{draw(hostname)}",
        port=draw(st.integers(min_value=1, max_value=65535)),
        is_disable_check=draw(st.booleans()),
        sort_order=draw(st.integers(min_value=0, max_value=100)),
        forwards=forwards,
    )


@st.composite
def domain_list_strategy(draw) -> list[DomainRecord]:
    count = draw(st.integers(min_value=0, max_value=4))
    return [draw(domain_record_strategy(i)) for i in range(1, count + 1)]


def line(*fields) -> str:
    return "|".join(str(f) for f in fields)


class TestExportImportProperty:
    """Everything an export contains is recovered by parsing it."""

    @given(domains=domain_list_strategy(), include_header=st.booleans())
    @settings(max_examples=100)
    def test_parse_recovers_exported_records(self, domains, include_header):
        parsed = parse_records(format_records(domains, include_header=include_header))

        assert [(d.domain, d.port) for d in parsed] == [(d.domain, d.port) for d in domains]
        for original, item in zip(domains, parsed):
            assert item.is_disable_check == original.is_disable_check
            assert item.sort_order == original.sort_order
            assert [
                (f.forward_domain, f.ip, f.isp, f.is_ban, f.weight, f.sort_order, f.record_type)
                for f in item.forwards
            ] == [
                (f.forward_domain, f.ip, f.isp, f.is_ban, f.weight, f.sort_order, f.record_type)
                for f in original.forwards
            ]

    def test_header_is_first_line(self):
        text = format_records([], include_header=True)
        assert text.splitlines() == [HEADER]
        assert parse_records(text) == []


class TestParseProperty:
    """Parsing merges rows and rejects malformed lines with their number."""

    def test_rows_merge_by_domain_and_port(self):
        content = "\n".join([
            "# comment",
            "",
            line("Example.com", 443, "false", 1, "a.example.net", "", "isp1", "false", 10, 0, "A"),
            line("example.com", 443, "false", 1, "b.example.net", "", "isp2", "true", 5, 1, "cname"),
            line("example.com", 80, "true", 2, "", "", "", "false", 0, 0, ""),
        ])

        parsed = parse_records(content)

        assert [d.key for d in parsed] == ["example.com:443", "example.com:80"]
        assert [f.forward_domain for f in parsed[0].forwards] == ["a.example.net", "b.example.net"]
        assert parsed[0].forwards[1].record_type == "CNAME"
        assert parsed[0].forwards[1].is_ban is True
        assert parsed[1].forwards == []
        assert parsed[1].is_disable_check is True

    @given(count=st.integers(min_value=1, max_value=MIN_FIELDS - 1), prefix_lines=st.integers(min_value=0, max_value=5))
    @settings(max_examples=50)
    def test_short_lines_rejected_with_line_number(self, count, prefix_lines):
        content = "\n" * prefix_lines + "|".join(["x"] * count)

        with pytest.raises(ValidationError) as exc_info:
            parse_records(content)

        assert exc_info.value.code == "missing_fields"
        assert exc_info.value.details["line"] == prefix_lines + 1

    @given(bad=st.sampled_from(["abc", "1.5", "", "eighty"]))
    @settings(max_examples=20)
    def test_non_numeric_port_rejected(self, bad):
        content = line("example.com", bad, "false", 0, "a.example.net", "", "", "false", 0, 0, "A")

        with pytest.raises(ValidationError) as exc_info:
            parse_records(content)

        assert exc_info.value.code == "invalid_integer"
        assert exc_info.value.details["field"] == "port"

    def test_unknown_record_type_rejected(self):
        content = line("example.com", 80, "false", 0, "a.example.net", "", "", "false", 0, 0, "MX")

        with pytest.raises(ValidationError) as exc_info:
            parse_records(content)

        assert exc_info.value.code == "invalid_record_type"

    def test_empty_domain_rejected(self):
        content = line("", 80, "false", 0, "a.example.net", "", "", "false", 0, 0, "A")

        with pytest.raises(ValidationError) as exc_info:
            parse_records(content)

        assert exc_info.value.code == "empty_domain"

    @given(value=st.sampled_from(["TRUE", "True", "true", " true "]))
    @settings(max_examples=10)
    def test_booleans_are_case_insensitive(self, value):
        content = line("example.com", 80, value, 0, "a.example.net", "", "", value, 0, 0, "A")
        [item] = parse_records(content)
        assert item.is_disable_check is True
        assert item.forwards[0].is_ban is True
