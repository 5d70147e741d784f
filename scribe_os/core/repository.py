"""Async repositories over the session record schema."""

from __future__ import annotations

from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from scribe_os.core.models import (
    AuditLog,
    ClinicalDocument,
    ClinicalSession,
    ExportRecord,
    Patient,
    Provider,
)
from scribe_os.models.export import SessionFilter


class SessionRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> ClinicalSession:
        record = ClinicalSession(**kwargs)
        self.session.add(record)
        await self.session.flush()
        return record

    async def get_by_id(self, session_id: str) -> Optional[ClinicalSession]:
        stmt = select(ClinicalSession).where(ClinicalSession.id == session_id)
        result = await self.session.execute(stmt.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def list_by_owner(self, owner_id: str, filters: Optional[SessionFilter] = None) -> Sequence[ClinicalSession]:
        filters = filters or SessionFilter()
        stmt = select(ClinicalSession).where(ClinicalSession.owner_id == owner_id)
        if filters.status is not None:
            stmt = stmt.where(ClinicalSession.status == filters.status.value)
        if filters.patient_id:
            stmt = stmt.where(ClinicalSession.patient_id == filters.patient_id)
        if filters.date_from:
            stmt = stmt.where(ClinicalSession.created_at >= filters.date_from)
        if filters.date_to:
            stmt = stmt.where(ClinicalSession.created_at <= filters.date_to)
        if filters.session_ids is not None:
            stmt = stmt.where(ClinicalSession.id.in_(filters.session_ids))
        stmt = stmt.order_by(ClinicalSession.created_at.desc()).limit(filters.limit)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def compare_and_set_status(
        self,
        session_id: str,
        expected: str | Iterable[str],
        new_status: str,
        **values: Any,
    ) -> bool:
        """Atomically move ``status`` from ``expected`` to ``new_status``.

        Extra column values are written in the same statement. Returns False
        when no row matched, i.e. the status had already changed.
        """
        expected_set = [expected] if isinstance(expected, str) else list(expected)
        stmt = (
            update(ClinicalSession)
            .where(
                ClinicalSession.id == session_id,
                ClinicalSession.status.in_(expected_set),
            )
            .values(status=new_status, **values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def update_fields(
        self,
        session_id: str,
        *,
        expected_status: Optional[str] = None,
        **values: Any,
    ) -> bool:
        """Atomic column update, optionally guarded by the current status."""
        stmt = update(ClinicalSession).where(ClinicalSession.id == session_id)
        if expected_status is not None:
            stmt = stmt.where(ClinicalSession.status == expected_status)
        stmt = stmt.values(**values).execution_options(synchronize_session=False)
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def count_by_status(self, owner_id: str) -> dict[str, int]:
        stmt = (
            select(ClinicalSession.status, func.count())
            .where(ClinicalSession.owner_id == owner_id)
            .group_by(ClinicalSession.status)
        )
        result = await self.session.execute(stmt)
        return {status: count for status, count in result.all()}

    async def degraded_count(self, owner_id: str) -> int:
        stmt = select(func.count()).where(
            ClinicalSession.owner_id == owner_id,
            ClinicalSession.degraded.is_(True),
        )
        return (await self.session.execute(stmt)).scalar_one()

    async def average_duration(self, owner_id: str) -> Optional[float]:
        stmt = select(func.avg(ClinicalSession.audio_duration_seconds)).where(
            ClinicalSession.owner_id == owner_id,
            ClinicalSession.audio_duration_seconds.is_not(None),
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()


class PatientRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> Patient:
        patient = Patient(**kwargs)
        self.session.add(patient)
        await self.session.flush()
        return patient

    async def get_by_id(self, patient_id: str) -> Optional[Patient]:
        return await self.session.get(Patient, patient_id)

    async def get_many(self, patient_ids: Iterable[str]) -> dict[str, Patient]:
        ids = {pid for pid in patient_ids if pid}
        if not ids:
            return {}
        result = await self.session.execute(select(Patient).where(Patient.id.in_(ids)))
        return {p.id: p for p in result.scalars().all()}


class ProviderRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> Provider:
        provider = Provider(**kwargs)
        self.session.add(provider)
        await self.session.flush()
        return provider

    async def get_by_id(self, provider_id: str) -> Optional[Provider]:
        return await self.session.get(Provider, provider_id)

    async def get_active(self, provider_id: str) -> Optional[Provider]:
        result = await self.session.execute(
            select(Provider).where(Provider.id == provider_id, Provider.active.is_(True))
        )
        return result.scalar_one_or_none()


class ExportRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> ExportRecord:
        record = ExportRecord(**kwargs)
        self.session.add(record)
        await self.session.flush()
        return record

    async def get_by_id(self, export_id: str) -> Optional[ExportRecord]:
        return await self.session.get(ExportRecord, export_id)

    async def list_by_owner(self, owner_id: str, limit: int = 20) -> Sequence[ExportRecord]:
        stmt = (
            select(ExportRecord)
            .where(ExportRecord.owner_id == owner_id)
            .order_by(ExportRecord.created_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def count_by_owner(self, owner_id: str) -> int:
        stmt = select(func.count()).where(ExportRecord.owner_id == owner_id)
        return (await self.session.execute(stmt)).scalar_one()


class DocumentRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> ClinicalDocument:
        document = ClinicalDocument(**kwargs)
        self.session.add(document)
        await self.session.flush()
        return document

    async def get_by_id(self, document_id: str) -> Optional[ClinicalDocument]:
        return await self.session.get(ClinicalDocument, document_id)

    async def list_by_owner(
        self,
        owner_id: str,
        *,
        kind: Optional[str] = None,
        session_id: Optional[str] = None,
        offset: int = 0,
        limit: int = 10,
    ) -> tuple[Sequence[ClinicalDocument], int]:
        """One page of the owner's documents, newest first, plus the total count."""
        conditions = [ClinicalDocument.owner_id == owner_id]
        if kind:
            conditions.append(ClinicalDocument.kind == kind)
        if session_id:
            conditions.append(ClinicalDocument.session_id == session_id)

        stmt = (
            select(ClinicalDocument)
            .where(*conditions)
            .order_by(ClinicalDocument.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        rows = (await self.session.execute(stmt)).scalars().all()
        total = (await self.session.execute(select(func.count()).where(*conditions))).scalar_one()
        return rows, total

    async def count_by_owner(self, owner_id: str) -> int:
        stmt = select(func.count()).where(ClinicalDocument.owner_id == owner_id)
        return (await self.session.execute(stmt)).scalar_one()


class AuditRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def log_action(
        self,
        action: str,
        resource_type: str,
        resource_id: str,
        user_id: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> AuditLog:
        entry = AuditLog(
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id),
            details=details,
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def recent_for_user(self, user_id: str, limit: int = 5) -> Sequence[AuditLog]:
        stmt = (
            select(AuditLog)
            .where(AuditLog.user_id == user_id)
            .order_by(AuditLog.timestamp.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()
