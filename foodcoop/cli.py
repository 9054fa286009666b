from __future__ import annotations

import argparse
import json

from foodcoop.core.logging import configure_logging
from foodcoop.domain.accounting.reports import generate_group_balances
from foodcoop.domain.accounting.transactions import list_transactions
from foodcoop.domain.orders import get_order, order_sums, profit
from foodcoop.persistence.pg import init_db, session_scope
from foodcoop.reconciliation.rules import check_account_balances_match_ledger, run_order_reconciliation


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Foodcoop order workflow CLI")
    top = parser.add_subparsers(dest="command", required=True)

    top.add_parser("init-db", help="Create all tables")

    sums = top.add_parser("sums", help="Print the totals of an order under every price basis")
    sums.add_argument("order_id", type=int)

    ledger = top.add_parser("ledger", help="Print ordergroup accounts as a beancount ledger")
    ledger.add_argument("--balances-only", action="store_true")

    reconcile = top.add_parser("reconcile", help="Check an order's sums and settlement against the accounts")
    reconcile.add_argument("order_id", type=int)

    return parser


def _print(payload: dict) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _run_sums(args: argparse.Namespace) -> int:
    with session_scope() as session:
        order = get_order(session, args.order_id)
        _print(
            {
                "order_id": order.id,
                "state": order.state,
                "sums": order_sums(session, order),
                "profit": profit(session, order, with_markup=True),
                "profit_without_markup": profit(session, order, with_markup=False),
            }
        )
    return 0


def _run_ledger(args: argparse.Namespace) -> int:
    with session_scope() as session:
        report = generate_group_balances(list_transactions(session))
    if args.balances_only:
        _print({"balances": report["balances"], "order_income": report["order_income"]})
    else:
        print(report["beancount_ledger"], end="")
    return 0


def _run_reconcile(args: argparse.Namespace) -> int:
    with session_scope() as session:
        order = get_order(session, args.order_id)
        transactions = list_transactions(session)
        results = run_order_reconciliation(session, order, transactions)
        groups = [go.ordergroup for go in order.group_orders]
        results.append(check_account_balances_match_ledger(groups, generate_group_balances(transactions)))
    _print({"order_id": args.order_id, "results": [vars(r) for r in results]})
    return 0 if all(r.passed for r in results) else 1


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    parser = _build_parser()
    args = parser.parse_args(argv)
    init_db()

    if args.command == "init-db":
        return 0
    if args.command == "sums":
        return _run_sums(args)
    if args.command == "ledger":
        return _run_ledger(args)
    if args.command == "reconcile":
        return _run_reconcile(args)

    parser.error("unsupported command")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
