from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .errors import LedgerError
from .records import PriceBreakdown


@dataclass(frozen=True)
class CreditGrant:
    """Free hours (sessions for trainings) a plan grants on one resource for a period."""

    credit_id: int
    hours: int


@dataclass(frozen=True)
class PrepaidPackBalance:
    id: int
    minutes: int
    minutes_used: int = 0
    expires_at: Optional[datetime] = None

    @property
    def remaining(self) -> int:
        return max(self.minutes - self.minutes_used, 0)

    def usable_at(self, at: datetime) -> bool:
        return self.expires_at is None or self.expires_at >= at


@dataclass(frozen=True)
class LedgerDebit:
    credit_id: Optional[int] = None
    hours: int = 0
    packs: tuple[tuple[int, int], ...] = ()

    @property
    def prepaid_minutes(self) -> int:
        return sum(minutes for _, minutes in self.packs)

    @property
    def empty(self) -> bool:
        return self.hours == 0 and not self.packs


@dataclass(frozen=True)
class CreditLedger:
    """
    Balances of one customer on one resource, as loaded at pricing time.
    Reading never mutates; `debit` computes what a committed breakdown consumes,
    which the caller persists.
    """

    grant: Optional[CreditGrant] = None
    hours_used: int = 0
    packs: tuple[PrepaidPackBalance, ...] = ()
    new_plan_being_bought: bool = False

    def available_hours(self) -> int:
        if self.grant is None:
            return 0
        if self.new_plan_being_bought:
            return self.grant.hours
        return max(self.grant.hours - self.hours_used, 0)

    def usable_packs(self, at: datetime) -> list[PrepaidPackBalance]:
        usable = [p for p in self.packs if p.usable_at(at) and p.remaining > 0]
        # earliest expiry first, packs without expiry last
        return sorted(usable, key=lambda p: (p.expires_at is None, p.expires_at or at, p.id))

    def available_prepaid_minutes(self, at: datetime) -> int:
        return sum(p.remaining for p in self.usable_packs(at))

    def debit(self, breakdown: PriceBreakdown, at: datetime) -> LedgerDebit:
        hours = breakdown.credit_hours_used
        if hours > self.available_hours():
            raise LedgerError(f"{hours} credit hours requested, {self.available_hours()} available")
        minutes = breakdown.prepaid_minutes_used
        if minutes > self.available_prepaid_minutes(at):
            raise LedgerError(
                f"{minutes} prepaid minutes requested, {self.available_prepaid_minutes(at)} available"
            )

        pack_debits: list[tuple[int, int]] = []
        for pack in self.usable_packs(at):
            if minutes <= 0:
                break
            taken = min(pack.remaining, minutes)
            pack_debits.append((pack.id, taken))
            minutes -= taken

        return LedgerDebit(
            credit_id=self.grant.credit_id if self.grant and hours else None,
            hours=hours,
            packs=tuple(pack_debits),
        )
