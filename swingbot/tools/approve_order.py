"""CLI to approve or reject orders held for manual review."""

from __future__ import annotations

import argparse

from swingbot.config.settings import load_settings
from swingbot.connectors.notifier import build_notifier
from swingbot.errors import ApprovalError, OrderNotFoundError
from swingbot.execution.approval import OrderApproval
from swingbot.execution.orders import OrderBook
from swingbot.monitoring.logging import bind_run_context, configure_logging


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Approve or reject pending orders.")
    parser.add_argument("--config", default=None, help="Path to config.yaml")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List orders awaiting approval")

    approve = sub.add_parser("approve", help="Approve a pending order")
    approve.add_argument("order_id")
    approve.add_argument("--by", default="operator", help="Name recorded as approver")

    reject = sub.add_parser("reject", help="Reject a pending order")
    reject.add_argument("order_id")
    reject.add_argument("--reason", default="Rejected by operator")
    reject.add_argument("--by", default="operator", help="Name recorded as rejecter")

    args = parser.parse_args(argv)

    settings = load_settings(args.config)
    configure_logging(settings.monitoring.log_level, settings.storage.logs_path, settings.monitoring)
    bind_run_context(tool="approve_order", command=args.command)
    order_book = OrderBook(settings.storage.orders_path)

    if args.command == "list":
        pending = order_book.pending_approval()
        if not pending:
            print("No orders awaiting approval.")
        for order in pending:
            print(
                f"{order.order_id}  {order.client_order_id}  {order.side} {order.quantity} "
                f"{order.symbol} @ {order.price}  created {order.created_at.isoformat()}"
            )
        return 0

    # Placement happens in the trading process, which owns the broker connection.
    approval = OrderApproval(
        order_book,
        notifier=build_notifier(settings.notifications),
        place_on_approval=False,
    )
    try:
        if args.command == "approve":
            order, _ = approval.approve(args.order_id, approved_by=args.by)
            print(f"Order {order.order_id} approved by {args.by}.")
        else:
            order = approval.reject(args.order_id, reason=args.reason, rejected_by=args.by)
            print(f"Order {order.order_id} rejected: {args.reason}")
    except (OrderNotFoundError, ApprovalError) as exc:
        print(f"Error: {exc}")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
