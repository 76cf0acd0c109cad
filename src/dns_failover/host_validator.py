"""
Hostname and field validation for admin input.

Normalizes hostnames to their canonical form (lowercase, IDNA-encoded) and
parses the integer, boolean and record-type fields admins type into chat.
Every rejection raises or returns a message in the admin's language.
"""

import ipaddress
import re
from dataclasses import dataclass
from typing import Optional

import idna

from dns_failover.enums import HostValidationErrorCode, RecordType
from dns_failover.exceptions import ValidationError
from dns_failover.i18n import get_message


# Valid hostname characters: a-z, A-Z, 0-9, hyphen (-), dot (.), and non-ASCII for IDN
FORBIDDEN_CHARS_PATTERN = re.compile(
    r'[\x00-\x1f\x7f'           # Control characters
    r'\s'                        # Whitespace
    r'!@#$%^&*()+=\[\]{}|\\:;"\'<>,?/`~]'  # Special symbols not allowed
)

MAX_HOSTNAME_LENGTH = 253


@dataclass
class HostValidationError:
    """Structured error information for hostname validation failures."""

    code: HostValidationErrorCode
    message: str
    details: dict


@dataclass
class HostValidationResult:
    """Result of hostname validation."""

    valid: bool
    canonical_host: Optional[str]
    error: Optional[HostValidationError]


class HostValidator:
    """
    Validates hostnames and parses admin-supplied field values.

    Handles:
    - Conversion to lowercase canonical form
    - IDNA encoding for international characters
    - Rejection of forbidden characters
    - IP literals, which are accepted unchanged
    """

    def __init__(self, language: str = "en") -> None:
        self._language = language

    def _msg(self, key: str, **kwargs) -> str:
        return get_message(key, self._language, **kwargs)

    def validate(self, raw_host: str) -> HostValidationResult:
        """
        Validate and normalize a hostname.

        Args:
            raw_host: The raw hostname string to validate

        Returns:
            HostValidationResult with validation status and canonical form or error
        """
        if not raw_host or not raw_host.strip():
            return self._failure(
                HostValidationErrorCode.EMPTY_INPUT,
                self._msg("validation.empty_input"),
                {"raw_input": raw_host},
            )

        host = raw_host.strip().rstrip(".")

        try:
            return HostValidationResult(
                valid=True,
                canonical_host=str(ipaddress.ip_address(host)),
                error=None,
            )
        except ValueError:
            pass

        if FORBIDDEN_CHARS_PATTERN.search(host):
            return self._failure(
                HostValidationErrorCode.FORBIDDEN_CHARS,
                self._msg("validation.forbidden_chars"),
                {"raw_input": raw_host, "forbidden_chars": FORBIDDEN_CHARS_PATTERN.findall(host)},
            )

        try:
            canonical = self.normalize_to_canonical(host)
        except ValidationError as e:
            return self._failure(HostValidationErrorCode.IDNA_ERROR, e.message, e.details)

        if len(canonical) > MAX_HOSTNAME_LENGTH:
            return self._failure(
                HostValidationErrorCode.TOO_LONG,
                self._msg("validation.too_long"),
                {"raw_input": raw_host, "length": len(canonical)},
            )

        return HostValidationResult(valid=True, canonical_host=canonical, error=None)

    def require_host(self, raw_host: str) -> str:
        """
        Return the canonical hostname or raise.

        Raises:
            ValidationError: If the hostname is invalid
        """
        result = self.validate(raw_host)
        if not result.valid:
            assert result.error is not None
            raise ValidationError(
                code=result.error.code.value,
                message=result.error.message,
                details=result.error.details,
            )
        assert result.canonical_host is not None
        return result.canonical_host

    def normalize_to_canonical(self, host: str) -> str:
        """
        Convert a hostname to canonical form (lowercase, IDNA-encoded).

        Raises:
            ValidationError: If IDNA encoding fails
        """
        host_lower = host.lower()
        if all(ord(c) <= 127 for c in host_lower):
            return host_lower
        try:
            return idna.encode(host_lower, uts46=True).decode("ascii")
        except idna.IDNAError as e:
            raise ValidationError(
                code=HostValidationErrorCode.IDNA_ERROR.value,
                message=self._msg("validation.idna_error", error=e),
                details={"host": host, "idna_error": str(e)},
            )

    def _failure(
        self, code: HostValidationErrorCode, message: str, details: dict
    ) -> HostValidationResult:
        return HostValidationResult(
            valid=False,
            canonical_host=None,
            error=HostValidationError(code=code, message=message, details=details),
        )

    def parse_int(self, value: str, field_name: str, minimum: Optional[int] = 0) -> int:
        """
        Parse an integer field.

        Raises:
            ValidationError: If the value is not an integer or below minimum
        """
        try:
            number = int(value.strip())
        except (ValueError, AttributeError):
            raise ValidationError(
                code="invalid_integer",
                message=self._msg("validation.invalid_integer", field=field_name, value=value),
                details={"field": field_name, "value": value},
            )
        if minimum is not None and number < minimum:
            raise ValidationError(
                code="negative",
                message=self._msg("validation.negative", field=field_name),
                details={"field": field_name, "value": number},
            )
        return number

    def parse_port(self, value: str) -> int:
        try:
            port = int(value.strip())
        except (ValueError, AttributeError):
            port = 0
        if not 1 <= port <= 65535:
            raise ValidationError(
                code="invalid_port",
                message=self._msg("validation.invalid_port", value=value),
                details={"value": value},
            )
        return port

    def parse_bool(self, value: str, field_name: str) -> bool:
        text = value.strip().lower()
        if text in ("true", "1", "yes", "on"):
            return True
        if text in ("false", "0", "no", "off"):
            return False
        raise ValidationError(
            code="invalid_bool",
            message=self._msg("validation.invalid_bool", field=field_name, value=value),
            details={"field": field_name, "value": value},
        )

    def parse_record_type(self, value: str) -> str:
        record_type = value.strip().upper()
        if record_type not in {kind.value for kind in RecordType}:
            raise ValidationError(
                code="invalid_record_type",
                message=self._msg("validation.invalid_record_type", value=value),
                details={"value": value},
            )
        return record_type

    def parse_ip(self, value: str) -> str:
        """Parse an IP literal; an empty value is allowed and means unknown."""
        text = value.strip()
        if not text:
            return ""
        try:
            return str(ipaddress.ip_address(text))
        except ValueError:
            raise ValidationError(
                code="invalid_ip",
                message=self._msg("validation.invalid_ip", value=value),
                details={"value": value},
            )
