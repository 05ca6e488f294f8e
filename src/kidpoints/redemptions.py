"""Reward redemption requests and the parent approval state machine."""

from __future__ import annotations

from typing import Dict, FrozenSet, List, Optional

from sqlalchemy import update
from sqlmodel import Session, desc, select

from .bonus import lock_kid
from .catalog import CatalogStore
from .exceptions import ConcurrencyConflictError, InsufficientBalanceError, InvalidTransitionError, NotFoundError
from .ledger import PointsLedger
from .models import LedgerEntryType, LedgerRef, RedemptionStatus
from .persistence import Kid, Redemption, Reward, utcnow

TRANSITIONS: Dict[RedemptionStatus, FrozenSet[RedemptionStatus]] = {
    RedemptionStatus.PENDING: frozenset({RedemptionStatus.APPROVED, RedemptionStatus.REJECTED}),
    RedemptionStatus.APPROVED: frozenset({RedemptionStatus.DELIVERED}),
    RedemptionStatus.REJECTED: frozenset(),
    RedemptionStatus.DELIVERED: frozenset(),
}


def _parse_decision(decision: RedemptionStatus | str) -> RedemptionStatus:
    try:
        return RedemptionStatus(decision)
    except ValueError as exc:
        raise InvalidTransitionError(f"Unknown redemption decision '{decision}'.") from exc


class RedemptionWorkflow:
    """Points are reserved with a debit on request and refunded on rejection."""

    @staticmethod
    def request_redemption(session: Session, kid_id: int, reward_id: int) -> Redemption:
        kid = lock_kid(session, kid_id)
        reward = session.get(Reward, reward_id)
        if reward is None or reward.family_id != kid.family_id or not reward.active:
            raise NotFoundError(f"Reward '{reward_id}' is not available to kid '{kid_id}'.")
        balance = PointsLedger.balance(session, kid_id)
        if balance < reward.cost_points:
            raise InsufficientBalanceError(
                f"'{reward.title}' costs {reward.cost_points} points but only {balance} are available."
            )
        redemption = Redemption(kid_id=kid_id, reward_id=reward_id)
        session.add(redemption)
        session.flush()
        PointsLedger.append(
            session,
            kid_id,
            LedgerEntryType.DEBIT,
            reward.cost_points,
            f"Redeemed: {reward.title}",
            ref=(LedgerRef.REDEMPTION, redemption.id),
        )
        return redemption

    @staticmethod
    def decide(
        session: Session,
        redemption_id: int,
        decision: RedemptionStatus | str,
        actor: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Redemption:
        redemption = session.get(Redemption, redemption_id)
        if redemption is None:
            raise NotFoundError(f"Redemption '{redemption_id}' does not exist.")
        target = _parse_decision(decision)
        current = RedemptionStatus(redemption.status)
        if target not in TRANSITIONS[current]:
            raise InvalidTransitionError(f"Cannot move a redemption from {current.value} to {target.value}.")

        values: Dict[str, object] = {"status": target.value}
        if target in (RedemptionStatus.APPROVED, RedemptionStatus.REJECTED):
            values["decided_at"] = utcnow()
            values["decided_by"] = actor
        if notes is not None:
            values["notes"] = notes
        result = session.connection().execute(
            update(Redemption)
            .where(Redemption.id == redemption_id)
            .where(Redemption.status == current.value)
            .values(**values)
        )
        if result.rowcount != 1:
            raise ConcurrencyConflictError(f"Redemption '{redemption_id}' was decided by someone else.")
        session.expire(redemption)

        if target is RedemptionStatus.REJECTED:
            kid_id = redemption.kid_id
            reward = CatalogStore.get_reward(session, redemption.reward_id)
            # Refund what was reserved; the reward price may have changed since.
            debit = PointsLedger.find(session, kid_id, LedgerEntryType.DEBIT, (LedgerRef.REDEMPTION, redemption_id))
            if debit is not None:
                PointsLedger.append(
                    session,
                    kid_id,
                    LedgerEntryType.CREDIT,
                    debit.points,
                    f"Refund: {reward.title}",
                    ref=(LedgerRef.REDEMPTION, redemption_id),
                )
        session.refresh(redemption)
        return redemption

    @staticmethod
    def get(session: Session, redemption_id: int) -> Redemption:
        redemption = session.get(Redemption, redemption_id)
        if redemption is None:
            raise NotFoundError(f"Redemption '{redemption_id}' does not exist.")
        return redemption

    @staticmethod
    def redemptions_for_family(
        session: Session,
        family_id: int,
        status: Optional[RedemptionStatus | str] = None,
    ) -> List[Redemption]:
        CatalogStore.get_family(session, family_id)
        query = select(Redemption).join(Kid, Kid.id == Redemption.kid_id).where(Kid.family_id == family_id)
        if status is not None:
            query = query.where(Redemption.status == RedemptionStatus(status).value)
        return list(session.exec(query.order_by(desc(Redemption.requested_at), desc(Redemption.id))).all())

    @staticmethod
    def redemptions_for_kid(session: Session, kid_id: int) -> List[Redemption]:
        CatalogStore.get_kid(session, kid_id)
        return list(
            session.exec(
                select(Redemption)
                .where(Redemption.kid_id == kid_id)
                .order_by(desc(Redemption.requested_at), desc(Redemption.id))
            ).all()
        )


__all__ = ["RedemptionWorkflow", "TRANSITIONS"]
