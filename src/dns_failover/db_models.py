"""
Relational models for managed domains, their forward candidates, and chat
administrators.

Timestamps are unix seconds. `ForwardRecord.ban_time == 0` means either
"not banned" or, together with `is_ban`, "banned until explicit unban".
"""

import time

from sqlalchemy import (
    BigInteger,
    Boolean,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base
from .enums import AdminRole, RecordType, ResolveStatus


def unix_now() -> int:
    return int(time.time())


class DomainRecord(Base):
    """A managed hostname:port pair under failover control."""

    __tablename__ = "domain_records"
    __table_args__ = (
        UniqueConstraint("domain", "port", name="idx_domain_port"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    domain: Mapped[str] = mapped_column(String(255), nullable=False)
    port: Mapped[int] = mapped_column(Integer, nullable=False, default=80)

    # Cloudflare identifiers, filled at onboarding time
    record_id: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    zone_id: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    is_disable_check: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=unix_now)
    updated_at: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=unix_now, onupdate=unix_now
    )

    forwards: Mapped[list["ForwardRecord"]] = relationship(
        back_populates="domain_record",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
        order_by="ForwardRecord.id",
    )

    @property
    def label(self) -> str:
        return f"{self.domain}:{self.port}"

    def __repr__(self) -> str:
        return f"<DomainRecord(id={self.id}, domain={self.domain!r}, port={self.port})>"


class ForwardRecord(Base):
    """One DNS-failover candidate target for a domain."""

    __tablename__ = "forward_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    domain_record_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("domain_records.id", ondelete="CASCADE", onupdate="CASCADE"),
        nullable=False,
        index=True,
    )

    forward_domain: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    ip: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    isp: Mapped[str] = mapped_column(String(64), nullable=False, default="")

    # Ban state
    is_ban: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ban_time: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # Selection policy
    weight: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    record_type: Mapped[str] = mapped_column(
        String(16), nullable=False, default=RecordType.A.value
    )

    # Activation state
    last_resolved_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    resolve_status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=ResolveStatus.NEVER.value
    )

    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=unix_now)
    updated_at: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=unix_now, onupdate=unix_now
    )

    domain_record: Mapped[DomainRecord] = relationship(back_populates="forwards")

    def __repr__(self) -> str:
        return (
            f"<ForwardRecord(id={self.id}, forward_domain={self.forward_domain!r}, "
            f"weight={self.weight}, is_ban={self.is_ban})>"
        )


class TelegramAdmin(Base):
    """A chat user allowed to administer the controller."""

    __tablename__ = "telegram_admins"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uid: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True, index=True)
    username: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    first_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    role: Mapped[str] = mapped_column(String(32), nullable=False, default=AdminRole.ADMIN.value)
    remark: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    added_by: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    is_ban: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False, default=unix_now)
    updated_at: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=unix_now, onupdate=unix_now
    )

    def __repr__(self) -> str:
        return f"<TelegramAdmin(uid={self.uid}, username={self.username!r}, is_ban={self.is_ban})>"
