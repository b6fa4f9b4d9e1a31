"""
Balance reconciliation for canonical market events.

Each event maps to a tuple of balance adjustments. The adjustment variants come in two families
which are kept separate:

Authoritative overwrite:
    - BorrowedSnapshot (Borrow, RepayBorrow): the protocol reports the post-event absolute
      borrowed total (`accountBorrows`), which replaces the stored amount. Reapplying the same
      event yields the same result.

Delta adjustment:
    - BorrowedDecrease (LiquidateBorrow): subtract the repaid amount from the borrower.
    - SuppliedIncrease / SuppliedDecrease (Transfer): move market tokens between holders.
    Deltas are not idempotent, so the engine only applies them when the transaction log insert
    for the event created a new row.

Mint and Redeem produce no adjustments. The market token issue/burn they describe is also emitted
as a Transfer, which is where the supplied amount changes.

Decreases are clamped at zero. A clamp is an anomaly (the tracked state has diverged from the
protocol) and is returned to the caller for recording instead of raised.
"""

from dataclasses import dataclass
from enum import Enum

from eth_typing import ChecksumAddress
from sqlalchemy.orm import Session

from lendledger.constants import ZERO_ADDRESS
from lendledger.events.types import EventType, IndexedEvent
from lendledger.exceptions import LendLedgerValueError
from lendledger.ledger import TokenBalance, read_token_balance, upsert_balance
from lendledger.logging import logger


class AnomalyKind(Enum):
    SUPPLY_UNDERFLOW = "SUPPLY UNDERFLOW"
    BORROW_DIVERGENCE = "BORROW DIVERGENCE"


@dataclass(frozen=True, slots=True)
class AdjustmentResult:
    balance: TokenBalance
    # Set only when a decrease was clamped at zero
    anomaly_kind: AnomalyKind | None = None
    requested: int = 0
    available: int = 0

    @property
    def shortfall(self) -> int:
        return max(0, self.requested - self.available)


@dataclass(frozen=True, slots=True)
class BorrowedSnapshot:
    user: ChecksumAddress
    account_borrows: int

    def apply_to(self, current: TokenBalance) -> AdjustmentResult:
        return AdjustmentResult(
            balance=TokenBalance(
                amount_supplied=current.amount_supplied,
                amount_borrowed=self.account_borrows,
            )
        )


@dataclass(frozen=True, slots=True)
class BorrowedDecrease:
    user: ChecksumAddress
    amount: int

    def apply_to(self, current: TokenBalance) -> AdjustmentResult:
        return AdjustmentResult(
            balance=TokenBalance(
                amount_supplied=current.amount_supplied,
                amount_borrowed=max(0, current.amount_borrowed - self.amount),
            ),
            anomaly_kind=(
                AnomalyKind.BORROW_DIVERGENCE if self.amount > current.amount_borrowed else None
            ),
            requested=self.amount,
            available=current.amount_borrowed,
        )


@dataclass(frozen=True, slots=True)
class SuppliedIncrease:
    user: ChecksumAddress
    amount: int

    def apply_to(self, current: TokenBalance) -> AdjustmentResult:
        return AdjustmentResult(
            balance=TokenBalance(
                amount_supplied=current.amount_supplied + self.amount,
                amount_borrowed=current.amount_borrowed,
            )
        )


@dataclass(frozen=True, slots=True)
class SuppliedDecrease:
    user: ChecksumAddress
    amount: int

    def apply_to(self, current: TokenBalance) -> AdjustmentResult:
        return AdjustmentResult(
            balance=TokenBalance(
                amount_supplied=max(0, current.amount_supplied - self.amount),
                amount_borrowed=current.amount_borrowed,
            ),
            anomaly_kind=(
                AnomalyKind.SUPPLY_UNDERFLOW if self.amount > current.amount_supplied else None
            ),
            requested=self.amount,
            available=current.amount_supplied,
        )


type BalanceAdjustment = BorrowedSnapshot | BorrowedDecrease | SuppliedIncrease | SuppliedDecrease


@dataclass(frozen=True, slots=True)
class BalanceAnomaly:
    kind: AnomalyKind
    event: IndexedEvent
    user: ChecksumAddress
    requested: int
    available: int

    def describe(self) -> str:
        return (
            f"{self.kind.value}: {self.event.event_type.value} {self.event.id} requested "
            f"{self.requested} from {self.user} in {self.event.token} with {self.available} "
            "tracked, clamped to zero"
        )


class BalanceReconciler:
    """
    Computes and writes balance changes for canonical events.

    Every adjustment reads the current pair from the ledger store immediately before applying it.
    Callers must serialize reconciliation for any (user, token) key, e.g. by routing all events for
    a market through a single worker.
    """

    def plan(self, event: IndexedEvent) -> tuple[BalanceAdjustment, ...]:
        """
        Map a canonical event to the balance adjustments it implies, in application order.
        """

        match event.event_type:
            case EventType.BORROW | EventType.REPAY_BORROW:
                if event.account_borrows is None:
                    raise LendLedgerValueError(
                        message=f"{event.event_type.value} {event.id} has no accountBorrows"
                    )
                return (BorrowedSnapshot(user=event.user, account_borrows=event.account_borrows),)

            case EventType.MINT | EventType.REDEEM:
                return ()

            case EventType.LIQUIDATE_BORROW:
                if event.related_address is None:
                    raise LendLedgerValueError(
                        message=f"LiquidateBorrow {event.id} has no borrower"
                    )
                if event.amount == 0:
                    return ()
                return (BorrowedDecrease(user=event.related_address, amount=event.amount),)

            case EventType.TRANSFER:
                # Zero-amount transfers have no effect
                if event.amount == 0:
                    return ()

                from_address = event.user
                to_address = event.related_address or event.user

                # The zero address marks a mint (sending) or a burn (receiving). Any other
                # address, including the market contract, is an ordinary holder.
                if from_address == ZERO_ADDRESS and to_address == ZERO_ADDRESS:
                    return ()
                if from_address == ZERO_ADDRESS:
                    return (SuppliedIncrease(user=to_address, amount=event.amount),)
                if to_address == ZERO_ADDRESS:
                    return (SuppliedDecrease(user=from_address, amount=event.amount),)
                return (
                    SuppliedDecrease(user=from_address, amount=event.amount),
                    SuppliedIncrease(user=to_address, amount=event.amount),
                )

    def reconcile(self, session: Session, event: IndexedEvent) -> list[BalanceAnomaly]:
        """
        Apply the event's adjustments through the session and return any anomalies produced.
        """

        anomalies: list[BalanceAnomaly] = []

        for adjustment in self.plan(event):
            current = read_token_balance(
                session=session,
                user_address=adjustment.user,
                token_symbol=event.token,
            )
            result = adjustment.apply_to(current)
            upsert_balance(
                session=session,
                user_address=adjustment.user,
                token_symbol=event.token,
                balance=result.balance,
            )

            logger.debug(
                f"{event.event_type.value} {event.token} {adjustment.user}: "
                f"supplied {current.amount_supplied} -> {result.balance.amount_supplied}, "
                f"borrowed {current.amount_borrowed} -> {result.balance.amount_borrowed} "
                f"({event.block_number}.{event.log_index})"
            )

            if result.anomaly_kind is not None:
                anomalies.append(
                    BalanceAnomaly(
                        kind=result.anomaly_kind,
                        event=event,
                        user=adjustment.user,
                        requested=result.requested,
                        available=result.available,
                    )
                )

        return anomalies
