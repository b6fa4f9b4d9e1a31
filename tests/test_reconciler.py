import pytest
from hexbytes import HexBytes
from sqlalchemy.orm import Session, sessionmaker

from conftest import ALICE, BOB, CAROL, MOONWELL_USDC
from lendledger.constants import ZERO_ADDRESS
from lendledger.events.types import EventType, IndexedEvent
from lendledger.exceptions import LendLedgerValueError
from lendledger.ledger import TokenBalance, read_token_balance, upsert_balance
from lendledger.reconciler import (
    AnomalyKind,
    BalanceReconciler,
    BorrowedDecrease,
    BorrowedSnapshot,
    SuppliedDecrease,
    SuppliedIncrease,
)


def _event(
    event_type: EventType,
    user: str,
    amount: int,
    related_address: str | None = None,
    account_borrows: int | None = None,
    log_index: int = 0,
) -> IndexedEvent:
    return IndexedEvent(
        event_type=event_type,
        user=user,  # type: ignore[arg-type]
        token="USDC",
        token_address=MOONWELL_USDC,
        amount=amount,
        block_number=100,
        block_timestamp=1_700_000_000,
        transaction_hash=HexBytes("0x" + "ef" * 32),
        log_index=log_index,
        related_address=related_address,  # type: ignore[arg-type]
        account_borrows=account_borrows,
    )


@pytest.fixture
def reconciler() -> BalanceReconciler:
    return BalanceReconciler()


def test_borrowed_snapshot_overwrites():
    result = BorrowedSnapshot(user=ALICE, account_borrows=250).apply_to(
        TokenBalance(amount_supplied=7, amount_borrowed=1_000)
    )
    assert result.balance == TokenBalance(amount_supplied=7, amount_borrowed=250)
    assert result.shortfall == 0


def test_borrowed_decrease_clamps():
    adjustment = BorrowedDecrease(user=ALICE, amount=300)

    result = adjustment.apply_to(TokenBalance(amount_supplied=5, amount_borrowed=1_000))
    assert result.balance == TokenBalance(amount_supplied=5, amount_borrowed=700)
    assert result.shortfall == 0

    result = adjustment.apply_to(TokenBalance(amount_supplied=5, amount_borrowed=100))
    assert result.balance == TokenBalance(amount_supplied=5, amount_borrowed=0)
    assert result.shortfall == 200
    assert result.anomaly_kind is AnomalyKind.BORROW_DIVERGENCE
    assert (result.requested, result.available) == (300, 100)


def test_supplied_increase_and_decrease():
    current = TokenBalance(amount_supplied=100, amount_borrowed=9)

    assert SuppliedIncrease(user=ALICE, amount=50).apply_to(current).balance == TokenBalance(
        amount_supplied=150, amount_borrowed=9
    )

    result = SuppliedDecrease(user=ALICE, amount=40).apply_to(current)
    assert result.balance == TokenBalance(amount_supplied=60, amount_borrowed=9)
    assert result.shortfall == 0
    assert result.anomaly_kind is None

    result = SuppliedDecrease(user=ALICE, amount=130).apply_to(current)
    assert result.balance == TokenBalance(amount_supplied=0, amount_borrowed=9)
    assert result.shortfall == 30
    assert result.anomaly_kind is AnomalyKind.SUPPLY_UNDERFLOW


def test_plan_borrow_and_repay(reconciler: BalanceReconciler):
    assert reconciler.plan(
        _event(EventType.BORROW, ALICE, amount=100, account_borrows=1_100)
    ) == (BorrowedSnapshot(user=ALICE, account_borrows=1_100),)

    # A third-party repayment snapshots the borrower, not the payer
    assert reconciler.plan(
        _event(EventType.REPAY_BORROW, ALICE, amount=100, related_address=BOB, account_borrows=0)
    ) == (BorrowedSnapshot(user=ALICE, account_borrows=0),)


def test_plan_borrow_without_account_borrows(reconciler: BalanceReconciler):
    with pytest.raises(LendLedgerValueError):
        reconciler.plan(_event(EventType.BORROW, ALICE, amount=100))


@pytest.mark.parametrize("event_type", [EventType.MINT, EventType.REDEEM])
def test_plan_mint_and_redeem_do_nothing(reconciler: BalanceReconciler, event_type: EventType):
    assert reconciler.plan(_event(event_type, ALICE, amount=10**6)) == ()


def test_plan_liquidation(reconciler: BalanceReconciler):
    assert reconciler.plan(
        _event(EventType.LIQUIDATE_BORROW, CAROL, amount=400, related_address=ALICE)
    ) == (BorrowedDecrease(user=ALICE, amount=400),)

    assert (
        reconciler.plan(_event(EventType.LIQUIDATE_BORROW, CAROL, amount=0, related_address=ALICE))
        == ()
    )

    with pytest.raises(LendLedgerValueError):
        reconciler.plan(_event(EventType.LIQUIDATE_BORROW, CAROL, amount=400))


def test_plan_transfers(reconciler: BalanceReconciler):
    assert reconciler.plan(
        _event(EventType.TRANSFER, ALICE, amount=10, related_address=BOB)
    ) == (
        SuppliedDecrease(user=ALICE, amount=10),
        SuppliedIncrease(user=BOB, amount=10),
    )

    # Mint and burn legs through the zero address
    assert reconciler.plan(
        _event(EventType.TRANSFER, ZERO_ADDRESS, amount=10, related_address=BOB)
    ) == (SuppliedIncrease(user=BOB, amount=10),)
    assert reconciler.plan(
        _event(EventType.TRANSFER, ALICE, amount=10, related_address=ZERO_ADDRESS)
    ) == (SuppliedDecrease(user=ALICE, amount=10),)
    assert (
        reconciler.plan(
            _event(EventType.TRANSFER, ZERO_ADDRESS, amount=10, related_address=ZERO_ADDRESS)
        )
        == ()
    )

    # The market contract is an ordinary holder
    assert reconciler.plan(
        _event(EventType.TRANSFER, MOONWELL_USDC, amount=10, related_address=BOB)
    ) == (
        SuppliedDecrease(user=MOONWELL_USDC, amount=10),
        SuppliedIncrease(user=BOB, amount=10),
    )
    assert reconciler.plan(
        _event(EventType.TRANSFER, ALICE, amount=10, related_address=MOONWELL_USDC)
    ) == (
        SuppliedDecrease(user=ALICE, amount=10),
        SuppliedIncrease(user=MOONWELL_USDC, amount=10),
    )
    assert reconciler.plan(_event(EventType.TRANSFER, ALICE, amount=0, related_address=BOB)) == ()


def test_plan_self_transfer(reconciler: BalanceReconciler):
    assert reconciler.plan(_event(EventType.TRANSFER, ALICE, amount=10)) == (
        SuppliedDecrease(user=ALICE, amount=10),
        SuppliedIncrease(user=ALICE, amount=10),
    )


def test_reconcile_writes_and_reports_underflow(
    reconciler: BalanceReconciler,
    session_factory: sessionmaker[Session],
):
    with session_factory() as session, session.begin():
        upsert_balance(
            session=session,
            user_address=ALICE,
            token_symbol="USDC",
            balance=TokenBalance(amount_supplied=60, amount_borrowed=5),
        )

    with session_factory() as session, session.begin():
        anomalies = reconciler.reconcile(
            session=session,
            event=_event(EventType.TRANSFER, ALICE, amount=100, related_address=BOB),
        )

    assert len(anomalies) == 1
    (anomaly,) = anomalies
    assert anomaly.kind is AnomalyKind.SUPPLY_UNDERFLOW
    assert anomaly.user == ALICE
    assert anomaly.requested == 100
    assert anomaly.available == 60
    assert "SUPPLY UNDERFLOW" in anomaly.describe()

    with session_factory() as session:
        assert read_token_balance(session, ALICE, "USDC") == TokenBalance(
            amount_supplied=0, amount_borrowed=5
        )
        assert read_token_balance(session, BOB, "USDC") == TokenBalance(
            amount_supplied=100, amount_borrowed=0
        )


def test_reconcile_self_transfer_preserves_balance(
    reconciler: BalanceReconciler,
    session_factory: sessionmaker[Session],
):
    with session_factory() as session, session.begin():
        upsert_balance(
            session=session,
            user_address=ALICE,
            token_symbol="USDC",
            balance=TokenBalance(amount_supplied=60),
        )

    with session_factory() as session, session.begin():
        assert reconciler.reconcile(session=session, event=_event(EventType.TRANSFER, ALICE, 25)) == []

    with session_factory() as session:
        assert read_token_balance(session, ALICE, "USDC").amount_supplied == 60


@pytest.mark.parametrize(
    ("event_type", "related_address"),
    [
        (EventType.BORROW, None),
        (EventType.REPAY_BORROW, BOB),
    ],
)
def test_reconcile_borrowed_snapshot_twice_is_stable(
    reconciler: BalanceReconciler,
    session_factory: sessionmaker[Session],
    event_type: EventType,
    related_address: str | None,
):
    with session_factory() as session, session.begin():
        upsert_balance(
            session=session,
            user_address=ALICE,
            token_symbol="USDC",
            balance=TokenBalance(amount_supplied=11, amount_borrowed=900),
        )

    event = _event(
        event_type,
        ALICE,
        amount=100,
        related_address=related_address,
        account_borrows=450,
    )

    with session_factory() as session, session.begin():
        assert reconciler.reconcile(session=session, event=event) == []
    with session_factory() as session:
        first = read_token_balance(session, ALICE, "USDC")
    assert first == TokenBalance(amount_supplied=11, amount_borrowed=450)

    with session_factory() as session, session.begin():
        assert reconciler.reconcile(session=session, event=event) == []
    with session_factory() as session:
        assert read_token_balance(session, ALICE, "USDC") == first


def test_reconcile_reports_borrow_divergence(
    reconciler: BalanceReconciler,
    session_factory: sessionmaker[Session],
):
    with session_factory() as session, session.begin():
        upsert_balance(
            session=session,
            user_address=ALICE,
            token_symbol="USDC",
            balance=TokenBalance(amount_borrowed=40),
        )

    with session_factory() as session, session.begin():
        (anomaly,) = reconciler.reconcile(
            session=session,
            event=_event(EventType.LIQUIDATE_BORROW, CAROL, amount=65, related_address=ALICE),
        )

    assert anomaly.kind is AnomalyKind.BORROW_DIVERGENCE
    assert anomaly.user == ALICE
    assert (anomaly.requested, anomaly.available) == (65, 40)
