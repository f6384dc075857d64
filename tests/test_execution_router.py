import threading
import time

import pytest

from swingbot.config.settings import ExecutionConfig, PaperTradingConfig, RiskConfig
from swingbot.connectors.llm_review import AdvisoryLevel, ReviewContract
from swingbot.connectors.notifier import NullNotifier
from swingbot.errors import ApprovalError, OrderNotFoundError
from swingbot.execution import (
    ExecutionRouter,
    OrderApproval,
    OrderBook,
    OrderStatus,
    PlacementResult,
)
from swingbot.execution.router import client_order_id
from swingbot.models import ExecutionStatus, Instrument, Signal, SignalDirection
from swingbot.paper import PaperPortfolio, PaperSimulator
from swingbot.risk import OrderRequest, PaperRiskManager


class _Balance:
    def available_balance(self) -> float:
        return 1_000_000.0


class _Placer:
    def __init__(self, status: str = "TRANSIT", success: bool = True, error: Exception | None = None):
        self.status = status
        self.success = success
        self.error = error
        self.calls: list[dict] = []

    def place_order(self, **kwargs) -> PlacementResult:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        if not self.success:
            return PlacementResult(False, error="rejected by exchange")
        return PlacementResult(True, broker_order_id=f"B{len(self.calls)}", status=self.status)


class _RaisingNotifier:
    def notify(self, message, context=None) -> None:
        raise RuntimeError("telegram down")


def _signal(**overrides) -> Signal:
    data = dict(
        instrument=Instrument(symbol="INFY", security_id="1594"),
        direction=SignalDirection.LONG,
        entry_price=1_000.0,
        stop_loss=950.0,
        take_profit=1_100.0,
        quantity=5,
        risk_reward=2.0,
        confidence=65.0,
        holding_days_estimate=10,
    )
    data.update(overrides)
    return Signal(**data)


def _router(
    book: OrderBook | None = None,
    placer=None,
    notifier=None,
    metrics=None,
    paper_simulator=None,
    **execution,
) -> ExecutionRouter:
    execution.setdefault("mode", "live")
    return ExecutionRouter(
        RiskConfig(current_capital=100_000.0),
        ExecutionConfig(**execution),
        book if book is not None else OrderBook(),
        placer=placer,
        balance_provider=_Balance(),
        paper_simulator=paper_simulator,
        notifier=notifier,
        metrics=metrics,
    )


class TestLiveRouting:
    def test_approval_quota_creates_one_pending_order(self, metrics) -> None:
        book = OrderBook()
        notifier = NullNotifier()
        placer = _Placer()
        router = _router(book, placer=placer, notifier=notifier, metrics=metrics)

        result = router.execute(_signal())

        assert result.status is ExecutionStatus.PENDING_APPROVAL
        assert result.message == "Manual approval required for first 30 trades (0/30 executed)"
        orders = book.all()
        assert len(orders) == 1
        assert orders[0].requires_approval
        assert orders[0].status is OrderStatus.PENDING
        assert result.order_id == orders[0].order_id
        assert placer.calls == []
        assert notifier.messages[0][0].startswith("APPROVAL REQUIRED")
        assert metrics.registry.get_sample_value("pending_approvals") == 1

    def test_failing_notifier_does_not_fail_execution(self, metrics) -> None:
        book = OrderBook()
        router = _router(book, notifier=_RaisingNotifier(), metrics=metrics)
        result = router.execute(_signal())
        assert result.status is ExecutionStatus.PENDING_APPROVAL
        assert len(book.all()) == 1
        assert metrics.registry.get_sample_value("notification_failures_total") == 1

    def test_successful_placement(self, metrics) -> None:
        book = OrderBook()
        placer = _Placer()
        router = _router(book, placer=placer, metrics=metrics, manual_approval_enabled=False)
        result = router.execute(_signal())
        assert result.status is ExecutionStatus.PLACED
        order = book.get(result.order_id)
        assert order.status is OrderStatus.PLACED
        assert order.broker_order_id == "B1"
        assert placer.calls[0]["side"] == "BUY"
        assert placer.calls[0]["client_order_id"].startswith("L-1594-")
        assert metrics.registry.get_sample_value("orders_total", {"status": "placed"}) == 1

    def test_filled_placement_counts_towards_quota(self) -> None:
        book = OrderBook()
        router = _router(book, placer=_Placer(status="TRADED"), manual_approval_enabled=False)
        result = router.execute(_signal())
        assert book.get(result.order_id).status is OrderStatus.EXECUTED
        assert book.snapshot().executed_live_count == 1

    def test_placer_exception_marks_order_failed(self) -> None:
        book = OrderBook()
        router = _router(book, placer=_Placer(error=ConnectionError("boom")), manual_approval_enabled=False)
        result = router.execute(_signal())
        assert result.status is ExecutionStatus.FAILED
        assert result.message == "Order placement failed: boom"
        order = book.get(result.order_id)
        assert order.status is OrderStatus.FAILED
        assert order.error == "boom"

    def test_unsuccessful_placement_marks_order_failed(self) -> None:
        book = OrderBook()
        router = _router(book, placer=_Placer(success=False), manual_approval_enabled=False)
        result = router.execute(_signal())
        assert result.status is ExecutionStatus.FAILED
        assert book.get(result.order_id).error == "rejected by exchange"

    def test_invalid_request_is_rejected_without_order(self) -> None:
        book = OrderBook()
        result = _router(book).execute({"symbol": "INFY", "security_id": "1594", "entry_price": 100})
        assert result.status is ExecutionStatus.REJECTED
        assert result.message == "Missing stop loss"
        assert book.all() == []

    def test_position_cap_rejection(self) -> None:
        book = OrderBook()
        result = _router(book, manual_approval_enabled=False).execute(_signal(quantity=20))
        assert result.status is ExecutionStatus.REJECTED
        assert result.decision.failed_check == "position_size"
        assert book.all() == []

    def test_large_order_notification(self) -> None:
        notifier = NullNotifier()
        router = _router(placer=_Placer(), notifier=notifier, manual_approval_enabled=False)
        router.execute(_signal(quantity=8))
        assert any(message.startswith("LARGE ORDER") for message, _ in notifier.messages)

    def test_block_auto_review_forces_approval(self) -> None:
        placer = _Placer()
        router = _router(placer=placer, manual_approval_enabled=False)
        review = ReviewContract(AdvisoryLevel.BLOCK_AUTO, -5, "earnings tomorrow")
        result = router.execute(_signal(), review=review)
        assert result.status is ExecutionStatus.PENDING_APPROVAL
        assert placer.calls == []

    def test_warning_review_does_not_add_friction(self) -> None:
        router = _router(placer=_Placer(), manual_approval_enabled=False)
        review = ReviewContract(AdvisoryLevel.WARNING, 0, "extended move")
        assert router.execute(_signal(), review=review).status is ExecutionStatus.PLACED


class TestPaperRouting:
    def test_paper_mode_opens_position(self) -> None:
        portfolio = PaperPortfolio("default", 100_000.0)
        simulator = PaperSimulator(portfolio, PaperRiskManager(PaperTradingConfig()))
        book = OrderBook()
        router = _router(book, paper_simulator=simulator, mode="paper")
        result = router.execute(_signal())
        assert result.status is ExecutionStatus.PAPER
        assert result.position_id in portfolio.positions
        assert book.all() == []

    def test_paper_mode_without_simulator_fails(self) -> None:
        result = _router(mode="paper").execute(_signal())
        assert result.status is ExecutionStatus.FAILED


class _SlowPlacer(_Placer):
    def place_order(self, **kwargs) -> PlacementResult:
        time.sleep(0.01)
        return super().place_order(**kwargs)


class TestConcurrentRouting:
    def test_parallel_signals_respect_total_exposure(self) -> None:
        book = OrderBook()
        placer = _SlowPlacer()
        router = _router(book, placer=placer, manual_approval_enabled=False)
        # 9,000 notional each against a 50,000 exposure cap
        barrier = threading.Barrier(12)
        results = []

        def submit() -> None:
            barrier.wait()
            results.append(router.execute(_signal(quantity=9)))

        threads = [threading.Thread(target=submit) for _ in range(12)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        statuses = [result.status for result in results]
        assert statuses.count(ExecutionStatus.PLACED) == 5
        assert statuses.count(ExecutionStatus.REJECTED) == 7
        assert len(placer.calls) == 5
        assert book.open_orders_notional() == 45_000.0
        assert {r.decision.failed_check for r in results if r.status is ExecutionStatus.REJECTED} == {
            "total_exposure"
        }

    def test_parallel_signals_each_wait_for_approval(self, metrics) -> None:
        book = OrderBook()
        placer = _Placer()
        router = _router(book, placer=placer, metrics=metrics)
        barrier = threading.Barrier(4)

        def submit() -> None:
            barrier.wait()
            router.execute(_signal())

        threads = [threading.Thread(target=submit) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(book.pending_approval()) == 4
        assert placer.calls == []
        assert metrics.registry.get_sample_value("pending_approvals") == 4


def test_client_order_id_format() -> None:
    short = _signal(direction=SignalDirection.SHORT, stop_loss=1_050.0, take_profit=900.0)
    request = OrderRequest.from_signal(short)
    assert client_order_id(request, now=1_700_000_123.4) == "S-1594-000123"


def _pending_order(book: OrderBook, placer=None, metrics=None):
    router = _router(book, placer=placer, metrics=metrics)
    result = router.execute(_signal())
    assert result.status is ExecutionStatus.PENDING_APPROVAL
    return router, result.order_id


class TestOrderApproval:
    def test_approve_places_order(self, metrics) -> None:
        book = OrderBook()
        placer = _Placer()
        router, order_id = _pending_order(book, placer, metrics)
        approval = OrderApproval(book, router=router, metrics=metrics)

        order, result = approval.approve(order_id, approved_by="desk")

        assert order.approved_by == "desk"
        assert order.approved_at is not None
        assert result.status is ExecutionStatus.PLACED
        assert book.get(order_id).status is OrderStatus.PLACED
        assert len(placer.calls) == 1
        assert metrics.registry.get_sample_value("pending_approvals") == 0

    def test_approve_without_placing(self) -> None:
        book = OrderBook()
        placer = _Placer()
        router, order_id = _pending_order(book, placer)
        order, result = OrderApproval(book, router=router, place_on_approval=False).approve(order_id)
        assert result is None
        assert order.status is OrderStatus.PENDING
        assert placer.calls == []
        assert book.pending_approval() == []

    def test_second_approval_is_rejected(self) -> None:
        book = OrderBook()
        router, order_id = _pending_order(book, _Placer())
        approval = OrderApproval(book, router=router)
        approval.approve(order_id)
        with pytest.raises(ApprovalError, match="Order already processed"):
            approval.approve(order_id)

    def test_reject_cancels_order(self) -> None:
        book = OrderBook()
        notifier = NullNotifier()
        _, order_id = _pending_order(book)
        order = OrderApproval(book, notifier=notifier).reject(order_id, reason="too late in the day")
        assert order.status is OrderStatus.CANCELLED
        assert order.rejection_reason == "too late in the day"
        assert notifier.messages[-1][0].startswith("ORDER REJECTED")
        with pytest.raises(ApprovalError, match="Order already processed"):
            OrderApproval(book).approve(order_id)

    def test_unknown_order(self) -> None:
        with pytest.raises(OrderNotFoundError, match="Order not found"):
            OrderApproval(OrderBook()).approve("missing")

    def test_order_without_approval_flag(self) -> None:
        book = OrderBook()
        router = _router(book, placer=_Placer(), manual_approval_enabled=False)
        order_id = router.execute(_signal()).order_id
        with pytest.raises(ApprovalError, match="Order does not require approval"):
            OrderApproval(book).approve(order_id)


class TestOrderBookPersistence:
    def test_reload_keeps_last_write(self, workspace_tmp_path) -> None:
        book = OrderBook(workspace_tmp_path)
        _, order_id = _pending_order(book)
        OrderApproval(book).reject(order_id)

        reloaded = OrderBook(workspace_tmp_path)
        order = reloaded.get(order_id)
        assert order is not None
        assert order.status is OrderStatus.CANCELLED
        assert order.requires_approval
        assert len(reloaded.all()) == 1
        lines = (workspace_tmp_path / "orders.jsonl").read_bytes().splitlines()
        assert len(lines) == 2

    def test_lookup_by_client_order_id(self) -> None:
        book = OrderBook()
        router = _router(book, placer=_Placer(), manual_approval_enabled=False)
        order = book.get(router.execute(_signal()).order_id)
        assert book.get(order.client_order_id) is order
