"""Append-only points ledger; the only source of truth for a kid's balance."""

from __future__ import annotations

from typing import List, Optional, Tuple

from sqlalchemy import case, func
from sqlmodel import Session, desc, select

from .models import LedgerEntryType, LedgerRef, require_positive
from .persistence import LedgerEntry

Reference = Tuple[LedgerRef | str, object]


def _ref_parts(ref: Optional[Reference]) -> Tuple[Optional[str], Optional[str]]:
    if ref is None:
        return None, None
    table, identifier = ref
    table_name = table.value if isinstance(table, LedgerRef) else str(table)
    return table_name, str(identifier)


class PointsLedger:
    """Read and append operations over :class:`LedgerEntry` rows.

    Every method works inside the caller's session so a balance read right
    after an append in the same transaction sees the new entry.
    """

    @staticmethod
    def append(
        session: Session,
        kid_id: int,
        entry_type: LedgerEntryType,
        points: int,
        description: str,
        *,
        ref: Optional[Reference] = None,
    ) -> LedgerEntry:
        kind = LedgerEntryType(entry_type)
        require_positive(points, allow_zero=True)
        ref_table, ref_id = _ref_parts(ref)
        entry = LedgerEntry(
            kid_id=kid_id,
            entry_type=kind.value,
            points=points,
            description=description,
            ref_table=ref_table,
            ref_id=ref_id,
        )
        session.add(entry)
        session.flush()
        return entry

    @staticmethod
    def balance(session: Session, kid_id: int) -> int:
        signed = case(
            (LedgerEntry.entry_type == LedgerEntryType.DEBIT.value, -LedgerEntry.points),
            else_=LedgerEntry.points,
        )
        total = session.exec(
            select(func.coalesce(func.sum(signed), 0)).where(LedgerEntry.kid_id == kid_id)
        ).one()
        return int(total)

    @staticmethod
    def history(session: Session, kid_id: int, *, limit: int = 50) -> List[LedgerEntry]:
        if limit <= 0:
            raise ValueError("limit must be greater than zero.")
        return list(
            session.exec(
                select(LedgerEntry)
                .where(LedgerEntry.kid_id == kid_id)
                .order_by(desc(LedgerEntry.created_at), desc(LedgerEntry.id))
                .limit(limit)
            ).all()
        )

    @staticmethod
    def find(
        session: Session,
        kid_id: int,
        entry_type: LedgerEntryType,
        ref: Reference,
    ) -> Optional[LedgerEntry]:
        ref_table, ref_id = _ref_parts(ref)
        return session.exec(
            select(LedgerEntry)
            .where(LedgerEntry.kid_id == kid_id)
            .where(LedgerEntry.entry_type == LedgerEntryType(entry_type).value)
            .where(LedgerEntry.ref_table == ref_table)
            .where(LedgerEntry.ref_id == ref_id)
        ).first()

    @classmethod
    def exists(
        cls,
        session: Session,
        kid_id: int,
        entry_type: LedgerEntryType,
        ref: Reference,
    ) -> bool:
        return cls.find(session, kid_id, entry_type, ref) is not None


__all__ = ["PointsLedger", "Reference"]
