"""
State Store module for persistent failover state.

Wraps the async SQLAlchemy session factory with the operations the engine,
the admin surface, and bulk import/export need. Every public method runs in
its own transaction; driver errors surface as PersistenceError.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from .database import create_engine, create_session_factory, init_db
from .db_models import DomainRecord, ForwardRecord, TelegramAdmin, unix_now
from .enums import ResolveStatus
from .exceptions import PersistenceError
from .models import ImportSummary
from .record_format import DomainImport


DOMAIN_FIELDS = frozenset({
    "domain", "port", "record_id", "zone_id", "is_disable_check", "sort_order",
})
FORWARD_FIELDS = frozenset({
    "forward_domain", "ip", "isp", "is_ban", "ban_time", "weight", "sort_order",
    "record_type", "last_resolved_at", "resolve_status",
})


class StateStore:
    """
    Relational store for domains, forwards, and administrators.

    Returned ORM objects are detached (sessions do not expire on commit), so
    callers may read them freely and hand them back to update methods.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        engine: Optional[AsyncEngine] = None,
    ) -> None:
        """
        Initialize the state store.

        Args:
            session_factory: Async session factory bound to the database
            engine: Engine owning the factory, disposed by close()
        """
        self._session_factory = session_factory
        self._engine = engine

    @classmethod
    def from_url(cls, database_url: str, echo: bool = False) -> "StateStore":
        """Create a store with its own engine."""
        engine = create_engine(database_url, echo=echo)
        return cls(create_session_factory(engine), engine=engine)

    async def init(self) -> None:
        """Create tables if needed."""
        if self._engine is None:
            return
        try:
            await init_db(self._engine)
        except SQLAlchemyError as e:
            raise PersistenceError(
                code="init_error",
                message=f"Failed to initialize database: {e}",
            ) from e

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()

    async def __aenter__(self) -> "StateStore":
        await self.init()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except IntegrityError as e:
            raise PersistenceError(
                code="integrity_error",
                message=f"Constraint violated during {operation}",
                details={"operation": operation, "error": str(e.orig)},
            ) from e
        except (SQLAlchemyError, OSError) as e:
            raise PersistenceError(
                code="db_error",
                message=f"Database error during {operation}: {e}",
                details={"operation": operation},
            ) from e

    async def ping(self) -> None:
        """
        Verify the database answers.

        Raises:
            PersistenceError: If the store is unavailable
        """
        async with self._transaction("ping") as session:
            await session.execute(text("SELECT 1"))

    # Domains

    async def list_domains(self, include_disabled: bool = True) -> list[DomainRecord]:
        """List domains with their forwards, in display order."""
        stmt = select(DomainRecord).order_by(DomainRecord.sort_order, DomainRecord.id)
        if not include_disabled:
            stmt = stmt.where(DomainRecord.is_disable_check.is_(False))
        async with self._transaction("list_domains") as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def get_domain(self, domain_id: int) -> Optional[DomainRecord]:
        async with self._transaction("get_domain") as session:
            return await session.get(DomainRecord, domain_id)

    async def find_domain(self, domain: str, port: int) -> Optional[DomainRecord]:
        stmt = select(DomainRecord).where(
            DomainRecord.domain == domain, DomainRecord.port == port
        )
        async with self._transaction("find_domain") as session:
            result = await session.execute(stmt)
            return result.scalars().first()

    async def add_domain(
        self,
        domain: str,
        port: int,
        record_id: str = "",
        zone_id: str = "",
        is_disable_check: bool = False,
        sort_order: int = 0,
    ) -> DomainRecord:
        record = DomainRecord(
            domain=domain,
            port=port,
            record_id=record_id,
            zone_id=zone_id,
            is_disable_check=is_disable_check,
            sort_order=sort_order,
            forwards=[],
        )
        async with self._transaction("add_domain") as session:
            session.add(record)
        return record

    async def update_domain(self, domain_id: int, **fields) -> Optional[DomainRecord]:
        """
        Update whitelisted columns of a domain.

        Returns:
            The refreshed domain, or None if it does not exist
        """
        unknown = set(fields) - DOMAIN_FIELDS
        if unknown:
            raise ValueError(f"Unknown domain fields: {sorted(unknown)}")
        async with self._transaction("update_domain") as session:
            record = await session.get(DomainRecord, domain_id)
            if record is None:
                return None
            for name, value in fields.items():
                setattr(record, name, value)
        return record

    async def delete_domain(self, domain_id: int) -> bool:
        """Delete a domain; its forwards go with it."""
        async with self._transaction("delete_domain") as session:
            record = await session.get(DomainRecord, domain_id)
            if record is None:
                return False
            await session.delete(record)
        return True

    # Forwards

    async def get_forward(self, forward_id: int) -> Optional[ForwardRecord]:
        async with self._transaction("get_forward") as session:
            return await session.get(ForwardRecord, forward_id)

    async def find_forward(self, domain_id: int, forward_domain: str) -> Optional[ForwardRecord]:
        stmt = select(ForwardRecord).where(
            ForwardRecord.domain_record_id == domain_id,
            ForwardRecord.forward_domain == forward_domain,
        )
        async with self._transaction("find_forward") as session:
            result = await session.execute(stmt)
            return result.scalars().first()

    async def add_forward(
        self,
        domain_id: int,
        forward_domain: str,
        ip: str = "",
        isp: str = "",
        weight: int = 0,
        sort_order: int = 0,
        record_type: str = "A",
        is_ban: bool = False,
        ban_time: int = 0,
    ) -> ForwardRecord:
        forward = ForwardRecord(
            domain_record_id=domain_id,
            forward_domain=forward_domain,
            ip=ip,
            isp=isp,
            weight=weight,
            sort_order=sort_order,
            record_type=record_type,
            is_ban=is_ban,
            ban_time=ban_time,
        )
        async with self._transaction("add_forward") as session:
            if await session.get(DomainRecord, domain_id) is None:
                raise PersistenceError(
                    code="not_found",
                    message=f"Domain {domain_id} does not exist",
                    details={"domain_id": domain_id},
                )
            session.add(forward)
        return forward

    async def update_forward(self, forward_id: int, **fields) -> Optional[ForwardRecord]:
        unknown = set(fields) - FORWARD_FIELDS
        if unknown:
            raise ValueError(f"Unknown forward fields: {sorted(unknown)}")
        async with self._transaction("update_forward") as session:
            forward = await session.get(ForwardRecord, forward_id)
            if forward is None:
                return None
            for name, value in fields.items():
                setattr(forward, name, value)
        return forward

    async def delete_forward(self, forward_id: int) -> bool:
        async with self._transaction("delete_forward") as session:
            forward = await session.get(ForwardRecord, forward_id)
            if forward is None:
                return False
            await session.delete(forward)
        return True

    async def save_ban_state(self, forward: ForwardRecord) -> None:
        """Persist the ban flag, expiry, and resolve status of one forward."""
        forward.updated_at = unix_now()
        stmt = (
            update(ForwardRecord)
            .where(ForwardRecord.id == forward.id)
            .values(
                is_ban=forward.is_ban,
                ban_time=forward.ban_time,
                resolve_status=forward.resolve_status,
                updated_at=forward.updated_at,
            )
        )
        async with self._transaction("save_ban_state") as session:
            await session.execute(stmt)

    async def activate_forward(
        self,
        domain_id: int,
        forward_id: int,
        ip: str,
        resolved_at: int,
    ) -> None:
        """
        Mark one forward as the active DNS target.

        In a single transaction the forward gets resolve_status=success, its
        resolve time, and its probed IP, and every sibling under the same
        domain goes back to resolve_status=never.
        """
        clear_siblings = (
            update(ForwardRecord)
            .where(
                ForwardRecord.domain_record_id == domain_id,
                ForwardRecord.id != forward_id,
            )
            .values(resolve_status=ResolveStatus.NEVER.value)
        )
        mark_active = (
            update(ForwardRecord)
            .where(ForwardRecord.id == forward_id)
            .values(
                resolve_status=ResolveStatus.SUCCESS.value,
                last_resolved_at=resolved_at,
                ip=ip,
            )
        )
        async with self._transaction("activate_forward") as session:
            await session.execute(clear_siblings)
            await session.execute(mark_active)

    # Bulk import

    async def import_domains(self, domains: list[DomainImport]) -> ImportSummary:
        """
        Merge parsed bulk rows into the store in one transaction.

        Existing domains (same domain and port) get their check flag and sort
        order updated; forwards already present under a domain (same
        forward hostname) are skipped.
        """
        summary = ImportSummary()
        async with self._transaction("import_domains") as session:
            for item in domains:
                result = await session.execute(
                    select(DomainRecord).where(
                        DomainRecord.domain == item.domain,
                        DomainRecord.port == item.port,
                    )
                )
                record = result.scalars().first()
                if record is None:
                    record = DomainRecord(
                        domain=item.domain,
                        port=item.port,
                        is_disable_check=item.is_disable_check,
                        sort_order=item.sort_order,
                    )
                    session.add(record)
                    await session.flush()
                    summary.domains_added += 1
                    existing = set()
                else:
                    record.is_disable_check = item.is_disable_check
                    record.sort_order = item.sort_order
                    summary.domains_updated += 1
                    forwards = await session.execute(
                        select(ForwardRecord.forward_domain).where(
                            ForwardRecord.domain_record_id == record.id
                        )
                    )
                    existing = set(forwards.scalars().all())

                for row in item.forwards:
                    if row.forward_domain in existing:
                        summary.forwards_skipped += 1
                        continue
                    session.add(ForwardRecord(
                        domain_record_id=record.id,
                        forward_domain=row.forward_domain,
                        ip=row.ip,
                        isp=row.isp,
                        is_ban=row.is_ban,
                        ban_time=0,
                        weight=row.weight,
                        sort_order=row.sort_order,
                        record_type=row.record_type,
                    ))
                    existing.add(row.forward_domain)
                    summary.forwards_added += 1
        return summary

    # Administrators

    async def list_admins(self) -> list[TelegramAdmin]:
        async with self._transaction("list_admins") as session:
            result = await session.execute(select(TelegramAdmin).order_by(TelegramAdmin.id))
            return list(result.scalars().all())

    async def get_admin(self, uid: int) -> Optional[TelegramAdmin]:
        async with self._transaction("get_admin") as session:
            result = await session.execute(select(TelegramAdmin).where(TelegramAdmin.uid == uid))
            return result.scalars().first()

    async def add_admin(
        self,
        uid: int,
        username: str = "",
        first_name: str = "",
        last_name: str = "",
        role: str = "admin",
        remark: str = "",
        added_by: int = 0,
    ) -> TelegramAdmin:
        admin = TelegramAdmin(
            uid=uid,
            username=username,
            first_name=first_name,
            last_name=last_name,
            role=role,
            remark=remark,
            added_by=added_by,
        )
        async with self._transaction("add_admin") as session:
            session.add(admin)
        return admin

    async def set_admin_ban(self, uid: int, is_ban: bool) -> bool:
        async with self._transaction("set_admin_ban") as session:
            result = await session.execute(
                update(TelegramAdmin)
                .where(TelegramAdmin.uid == uid)
                .values(is_ban=is_ban, updated_at=unix_now())
            )
            return result.rowcount > 0

    async def delete_admin(self, uid: int) -> bool:
        async with self._transaction("delete_admin") as session:
            result = await session.execute(select(TelegramAdmin).where(TelegramAdmin.uid == uid))
            admin = result.scalars().first()
            if admin is None:
                return False
            await session.delete(admin)
        return True

    async def active_admin_ids(self) -> list[int]:
        """Telegram user ids of administrators that are not banned."""
        stmt = (
            select(TelegramAdmin.uid)
            .where(TelegramAdmin.is_ban.is_(False))
            .order_by(TelegramAdmin.id)
        )
        async with self._transaction("active_admin_ids") as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())
