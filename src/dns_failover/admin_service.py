"""
Admin Service.

Every operation an administrator can perform from chat or the CLI: domain
and forward management, manual bans, Cloudflare record lookup, bulk
import/export and administrator management. Input is validated before any
state changes; rejected input raises ValidationError with a message in the
configured language.
"""

from typing import Optional

from .audit_logger import AuditLogger
from .ban_ledger import BanLedger
from .candidate_selector import order_candidates
from .db_models import DomainRecord, ForwardRecord, TelegramAdmin
from .dns_provider import CloudflareClient, DnsRecord
from .enums import AdminRole, LogLevel, RecordType
from .exceptions import ConfigurationError, ValidationError
from .host_validator import HostValidator
from .i18n import get_message
from .models import ImportSummary
from .record_format import format_records, parse_records
from .state_store import StateStore


EDITABLE_DOMAIN_FIELDS = (
    "domain", "port", "record_id", "zone_id", "is_disable_check", "sort_order",
)
EDITABLE_FORWARD_FIELDS = (
    "forward_domain", "ip", "isp", "weight", "sort_order", "record_type",
)


class AdminService:
    """Validated administrative operations on the state store."""

    def __init__(
        self,
        store: StateStore,
        ban_ledger: BanLedger,
        dns_client: Optional[CloudflareClient] = None,
        super_admin_id: int = 0,
        language: str = "en",
        logger: Optional[AuditLogger] = None,
    ) -> None:
        """
        Args:
            store: Relational state store
            ban_ledger: Ledger used for manual bans and auto-unban on display
            dns_client: Cloudflare client used by resolve_domain
            super_admin_id: Telegram uid of the configured super admin
            language: Language of validation messages
            logger: Optional audit logger
        """
        self._store = store
        self._ban_ledger = ban_ledger
        self._dns_client = dns_client
        self._super_admin_id = super_admin_id
        self._language = language
        self._validator = HostValidator(language)
        self._logger = logger

    @property
    def language(self) -> str:
        return self._language

    def now(self) -> int:
        return self._ban_ledger.now()

    def _msg(self, key: str, **kwargs) -> str:
        return get_message(key, self._language, **kwargs)

    def _reject(self, code: str, key: str, **kwargs) -> ValidationError:
        return ValidationError(code=code, message=self._msg(key, **kwargs), details=kwargs)

    # Authorisation

    def is_super_admin(self, uid: int) -> bool:
        return bool(self._super_admin_id) and uid == self._super_admin_id

    async def is_authorized(self, uid: int) -> bool:
        """The super admin and every non-banned admin may use the bot."""
        if self.is_super_admin(uid):
            return True
        admin = await self._store.get_admin(uid)
        return admin is not None and not admin.is_ban

    # Domains

    async def list_domains(self) -> list[DomainRecord]:
        """All domains; expired forward bans are lifted on the way out."""
        domains = await self._store.list_domains(include_disabled=True)
        now = self._ban_ledger.now()
        for domain in domains:
            await self._ban_ledger.auto_unban_expired(domain.forwards, now)
        return domains

    async def get_domain(self, domain_id: int) -> DomainRecord:
        domain = await self._store.get_domain(domain_id)
        if domain is None:
            raise self._reject("not_found", "common.domain_not_found", id=domain_id)
        return domain

    async def add_domain(self, raw_domain: str, raw_port: str = "80") -> DomainRecord:
        host = self._validator.require_host(raw_domain)
        port = self._validator.parse_port(raw_port)
        if await self._store.find_domain(host, port) is not None:
            raise self._reject("exists", "domain.exists", domain=f"{host}:{port}")
        domain = await self._store.add_domain(host, port)
        self._log_info(f"Domain {domain.label} added", {"domain_id": domain.id})
        return domain

    async def delete_domain(self, domain_id: int) -> DomainRecord:
        domain = await self.get_domain(domain_id)
        await self._store.delete_domain(domain_id)
        self._log_info(
            f"Domain {domain.label} deleted",
            {"domain_id": domain_id, "forwards": len(domain.forwards)},
        )
        return domain

    async def toggle_check(self, domain_id: int) -> DomainRecord:
        domain = await self.get_domain(domain_id)
        updated = await self._store.update_domain(
            domain_id, is_disable_check=not domain.is_disable_check
        )
        if updated is None:
            raise self._reject("not_found", "common.domain_not_found", id=domain_id)
        self._log_info(
            f"Checking {'disabled' if updated.is_disable_check else 'enabled'} for {updated.label}",
            {"domain_id": domain_id},
        )
        return updated

    async def set_domain_field(self, domain_id: int, field_name: str, raw_value: str) -> DomainRecord:
        """
        Edit one whitelisted domain column.

        Raises:
            ValidationError: If the field is unknown or the value is invalid
        """
        await self.get_domain(domain_id)
        if field_name not in EDITABLE_DOMAIN_FIELDS:
            raise self._reject(
                "unknown_field", "validation.unknown_field",
                field=field_name, fields=", ".join(EDITABLE_DOMAIN_FIELDS),
            )

        value: object
        if field_name == "domain":
            value = self._validator.require_host(raw_value)
        elif field_name == "port":
            value = self._validator.parse_port(raw_value)
        elif field_name == "is_disable_check":
            value = self._validator.parse_bool(raw_value, field_name)
        elif field_name == "sort_order":
            value = self._validator.parse_int(raw_value, field_name)
        else:
            value = raw_value.strip()

        updated = await self._store.update_domain(domain_id, **{field_name: value})
        if updated is None:
            raise self._reject("not_found", "common.domain_not_found", id=domain_id)
        self._log_info(
            f"Domain {updated.label} {field_name} updated",
            {"domain_id": domain_id, "field": field_name, "value": value},
        )
        return updated

    async def resolve_domain(self, domain_id: int) -> tuple[DomainRecord, DnsRecord]:
        """
        Look up the Cloudflare zone and A/CNAME record for a domain.

        Raises:
            ConfigurationError: If no Cloudflare client is configured
            DnsProviderError: If Cloudflare fails or no zone matches
            ValidationError: If the zone holds no A or CNAME record by that name
        """
        if self._dns_client is None:
            raise ConfigurationError(
                code="cloudflare_not_configured",
                message="Cloudflare API token is not configured",
            )
        domain = await self.get_domain(domain_id)
        zone_id = await self._dns_client.zone_id_by_name(domain.domain)
        records = await self._dns_client.list_records(zone_id, name=domain.domain)
        kinds = {kind.value for kind in RecordType}
        record = next((r for r in records if r.type in kinds), None)
        if record is None:
            raise self._reject(
                "record_not_found", "domain.record_missing",
                domain=domain.domain, zone_id=zone_id,
            )
        updated = await self._store.update_domain(domain_id, zone_id=zone_id, record_id=record.id)
        if updated is None:
            raise self._reject("not_found", "common.domain_not_found", id=domain_id)
        self._log_info(
            f"Resolved Cloudflare record for {updated.label}",
            {"zone_id": zone_id, "record_id": record.id, "record_type": record.type},
        )
        return updated, record

    # Forwards

    async def list_forwards(self, domain_id: int) -> tuple[DomainRecord, list[ForwardRecord]]:
        """A domain and its forwards in probe order."""
        domain = await self.get_domain(domain_id)
        await self._ban_ledger.auto_unban_expired(domain.forwards)
        return domain, order_candidates(domain.forwards)

    async def get_forward(self, forward_id: int) -> ForwardRecord:
        forward = await self._store.get_forward(forward_id)
        if forward is None:
            raise self._reject("not_found", "common.forward_not_found", id=forward_id)
        return forward

    async def add_forward(
        self,
        domain_id: int,
        raw_forward: str,
        raw_weight: str = "0",
        isp: str = "",
        raw_record_type: str = RecordType.A.value,
    ) -> ForwardRecord:
        domain = await self.get_domain(domain_id)
        host = self._validator.require_host(raw_forward)
        weight = self._validator.parse_int(raw_weight, "weight")
        record_type = self._validator.parse_record_type(raw_record_type)
        if await self._store.find_forward(domain_id, host) is not None:
            raise self._reject("exists", "forward.exists", forward=host, domain=domain.label)

        forward = await self._store.add_forward(
            domain_id,
            host,
            isp=isp.strip(),
            weight=weight,
            record_type=record_type,
        )
        self._log_info(
            f"Forward {host} added to {domain.label}",
            {"forward_id": forward.id, "weight": weight, "record_type": record_type},
        )
        return forward

    async def delete_forward(self, forward_id: int) -> ForwardRecord:
        forward = await self.get_forward(forward_id)
        await self._store.delete_forward(forward_id)
        self._log_info(
            f"Forward {forward.forward_domain} deleted",
            {"forward_id": forward_id, "domain_id": forward.domain_record_id},
        )
        return forward

    async def set_forward_field(self, forward_id: int, field_name: str, raw_value: str) -> ForwardRecord:
        """
        Edit one whitelisted forward column.

        Raises:
            ValidationError: If the field is unknown or the value is invalid
        """
        await self.get_forward(forward_id)
        if field_name not in EDITABLE_FORWARD_FIELDS:
            raise self._reject(
                "unknown_field", "validation.unknown_field",
                field=field_name, fields=", ".join(EDITABLE_FORWARD_FIELDS),
            )

        value: object
        if field_name == "forward_domain":
            value = self._validator.require_host(raw_value)
        elif field_name == "ip":
            value = self._validator.parse_ip(raw_value)
        elif field_name in ("weight", "sort_order"):
            value = self._validator.parse_int(raw_value, field_name)
        elif field_name == "record_type":
            value = self._validator.parse_record_type(raw_value)
        else:
            value = raw_value.strip()

        updated = await self._store.update_forward(forward_id, **{field_name: value})
        if updated is None:
            raise self._reject("not_found", "common.forward_not_found", id=forward_id)
        self._log_info(
            f"Forward {updated.forward_domain} {field_name} updated",
            {"forward_id": forward_id, "field": field_name, "value": value},
        )
        return updated

    async def ban_forward(self, forward_id: int) -> ForwardRecord:
        forward = await self.get_forward(forward_id)
        await self._ban_ledger.ban_manually(forward)
        return forward

    async def unban_forward(self, forward_id: int) -> ForwardRecord:
        forward = await self.get_forward(forward_id)
        await self._ban_ledger.unban(forward)
        return forward

    # Import / export

    async def import_records(self, content: str) -> ImportSummary:
        """
        Parse and merge pipe-format records.

        Raises:
            ValidationError: On the first malformed line; nothing is written
        """
        domains = parse_records(content)
        summary = await self._store.import_domains(domains)
        self._log_info(
            "Records imported",
            {
                "domains_added": summary.domains_added,
                "domains_updated": summary.domains_updated,
                "forwards_added": summary.forwards_added,
                "forwards_skipped": summary.forwards_skipped,
            },
        )
        return summary

    async def export_records(self, include_header: bool = True) -> str:
        domains = await self._store.list_domains(include_disabled=True)
        return format_records(domains, include_header=include_header)

    # Administrators

    async def list_admins(self) -> list[TelegramAdmin]:
        return await self._store.list_admins()

    def _parse_uid(self, raw_uid: str) -> int:
        return self._validator.parse_int(raw_uid, "uid", minimum=1)

    async def add_admin(
        self,
        raw_uid: str,
        remark: str = "",
        added_by: int = 0,
        username: str = "",
        first_name: str = "",
        last_name: str = "",
    ) -> TelegramAdmin:
        uid = self._parse_uid(raw_uid)
        if self.is_super_admin(uid):
            raise self._reject("is_super", "admin.is_super")
        if await self._store.get_admin(uid) is not None:
            raise self._reject("exists", "admin.exists", uid=uid)
        admin = await self._store.add_admin(
            uid,
            username=username,
            first_name=first_name,
            last_name=last_name,
            role=AdminRole.ADMIN.value,
            remark=remark.strip(),
            added_by=added_by,
        )
        self._log_info(f"Admin {uid} added", {"uid": uid, "added_by": added_by})
        return admin

    async def set_admin_ban(self, raw_uid: str, is_ban: bool) -> int:
        uid = self._parse_uid(raw_uid)
        if self.is_super_admin(uid):
            raise self._reject("is_super", "admin.is_super")
        if not await self._store.set_admin_ban(uid, is_ban):
            raise self._reject("not_found", "common.admin_not_found", uid=uid)
        self._log_info(f"Admin {uid} {'banned' if is_ban else 'unbanned'}", {"uid": uid})
        return uid

    async def delete_admin(self, raw_uid: str) -> int:
        uid = self._parse_uid(raw_uid)
        if self.is_super_admin(uid):
            raise self._reject("is_super", "admin.is_super")
        if not await self._store.delete_admin(uid):
            raise self._reject("not_found", "common.admin_not_found", uid=uid)
        self._log_info(f"Admin {uid} deleted", {"uid": uid})
        return uid

    def _log_info(self, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(LogLevel.INFO, "AdminService", message, data)
