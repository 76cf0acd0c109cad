"""
Pipe-delimited bulk record format used for import and export.

One line per forward:

    domain|port|is_disable|sort_order|forward_domain|ip|isp|is_ban|weight|forward_sort|record_type

Lines starting with '#' and blank lines are ignored. Rows sharing the same
domain:port are merged into one domain. A row with an empty forward_domain
declares the domain without adding a forward.
"""

from dataclasses import dataclass, field
from typing import Iterable

from .db_models import DomainRecord
from .enums import RecordType
from .exceptions import ValidationError


FIELD_NAMES = (
    "domain",
    "port",
    "is_disable",
    "sort_order",
    "forward_domain",
    "ip",
    "isp",
    "is_ban",
    "weight",
    "forward_sort",
    "record_type",
)
MIN_FIELDS = len(FIELD_NAMES)
HEADER = "# " + "|".join(FIELD_NAMES)


@dataclass
class ForwardRow:
    """A forward declared on one line of a bulk file."""

    forward_domain: str
    ip: str
    isp: str
    is_ban: bool
    weight: int
    sort_order: int
    record_type: str
    line_no: int = 0


@dataclass
class DomainImport:
    """A domain and the forwards merged from all of its lines."""

    domain: str
    port: int
    is_disable_check: bool
    sort_order: int
    forwards: list[ForwardRow] = field(default_factory=list)

    @property
    def key(self) -> str:
        return f"{self.domain}:{self.port}"


def _parse_bool(value: str) -> bool:
    return value.strip().lower() == "true"


def _parse_int(value: str, field_name: str, line_no: int) -> int:
    try:
        return int(value.strip())
    except ValueError:
        raise ValidationError(
            code="invalid_integer",
            message=f"Line {line_no}: {field_name} must be an integer, got {value.strip()!r}",
            details={"line": line_no, "field": field_name, "value": value},
        )


def _parse_record_type(value: str, line_no: int) -> str:
    record_type = value.strip().upper() or RecordType.A.value
    if record_type not in {kind.value for kind in RecordType}:
        raise ValidationError(
            code="invalid_record_type",
            message=f"Line {line_no}: unsupported record_type {value.strip()!r}",
            details={"line": line_no, "field": "record_type", "value": value},
        )
    return record_type


def parse_records(content: str) -> list[DomainImport]:
    """
    Parse bulk file content into domains with their forwards.

    Args:
        content: The whole file as text

    Returns:
        Domains in first-appearance order

    Raises:
        ValidationError: On the first malformed line (the line number is in
            the message and in details['line'])
    """
    merged: dict[str, DomainImport] = {}

    for index, raw_line in enumerate(content.splitlines()):
        line_no = index + 1
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue

        parts = [part.strip() for part in line.split("|")]
        if len(parts) < MIN_FIELDS:
            raise ValidationError(
                code="missing_fields",
                message=f"Line {line_no}: expected {MIN_FIELDS} fields, got {len(parts)}",
                details={"line": line_no, "fields": len(parts)},
            )

        domain = parts[0].lower()
        if not domain:
            raise ValidationError(
                code="empty_domain",
                message=f"Line {line_no}: domain is empty",
                details={"line": line_no},
            )

        port = _parse_int(parts[1], "port", line_no)
        is_disable = _parse_bool(parts[2])
        sort_order = _parse_int(parts[3], "sort_order", line_no)
        forward_domain = parts[4].lower()
        is_ban = _parse_bool(parts[7])
        weight = _parse_int(parts[8], "weight", line_no)
        forward_sort = _parse_int(parts[9], "forward_sort", line_no)
        record_type = _parse_record_type(parts[10], line_no)

        key = f"{domain}:{port}"
        entry = merged.get(key)
        if entry is None:
            entry = DomainImport(
                domain=domain,
                port=port,
                is_disable_check=is_disable,
                sort_order=sort_order,
            )
            merged[key] = entry

        if forward_domain:
            entry.forwards.append(ForwardRow(
                forward_domain=forward_domain,
                ip=parts[5],
                isp=parts[6],
                is_ban=is_ban,
                weight=weight,
                sort_order=forward_sort,
                record_type=record_type,
                line_no=line_no,
            ))

    return list(merged.values())


def _bool_text(value: bool) -> str:
    return "true" if value else "false"


def format_records(domains: Iterable[DomainRecord], include_header: bool = True) -> str:
    """
    Render domains and their forwards in the bulk format.

    A domain without forwards is written once with empty forward fields so
    that a round trip through `parse_records` keeps it.
    """
    lines: list[str] = [HEADER] if include_header else []

    for domain in domains:
        prefix = [
            domain.domain,
            str(domain.port),
            _bool_text(domain.is_disable_check),
            str(domain.sort_order),
        ]
        if not domain.forwards:
            lines.append("|".join(prefix + ["", "", "", "false", "0", "0", RecordType.A.value]))
            continue
        for forward in domain.forwards:
            lines.append("|".join(prefix + [
                forward.forward_domain,
                forward.ip,
                forward.isp,
                _bool_text(forward.is_ban),
                str(forward.weight),
                str(forward.sort_order),
                forward.record_type,
            ]))

    return "\n".join(lines) + "\n"
