"""CLI for the balance_monitor API.

Usage:
  poetry run balance-monitor-cli health
  poetry run balance-monitor-cli balance buy_card --refresh
  poetry run balance-monitor-cli subscribe 123456789 300 --interval 60
  poetry run balance-monitor-cli unsubscribe 123456789
  poetry run balance-monitor-cli status
  poetry run balance-monitor-cli run
  poetry run balance-monitor-cli targets --all
  poetry run balance-monitor-cli add-target master_fund "Master Fund" 0xWALLET --min-interval 5
  poetry run balance-monitor-cli remove-target master_fund
  poetry run balance-monitor-cli restore-target master_fund
  poetry run balance-monitor-cli refresh
"""
import argparse
import json
import sys

import httpx


def print_json(data: object) -> None:
    print(json.dumps(data, indent=2, default=str))


def cmd_health(client: httpx.Client, _: argparse.Namespace) -> int:
    r = client.get("/")
    r.raise_for_status()
    print_json(r.json())
    return 0


def cmd_balance(client: httpx.Client, args: argparse.Namespace) -> int:
    path = f"/balance/{args.target}" if args.target else "/balance"
    r = client.get(path, params={"refresh": args.refresh})
    r.raise_for_status()
    data = r.json()
    print(f"{data['balance_formatted']} {data['symbol']} @ {data['wallet_address']}")
    return 0


def cmd_subscribe(client: httpx.Client, args: argparse.Namespace) -> int:
    body = {"threshold": args.threshold, "interval_minutes": args.interval}
    if args.target:
        body["target"] = args.target
    r = client.put(f"/subscriptions/{args.subscriber_id}", json=body)
    r.raise_for_status()
    print_json(r.json())
    return 0


def cmd_unsubscribe(client: httpx.Client, args: argparse.Namespace) -> int:
    params = {"target": args.target} if args.target else None
    r = client.delete(f"/subscriptions/{args.subscriber_id}", params=params)
    r.raise_for_status()
    print_json(r.json())
    return 0


def cmd_show(client: httpx.Client, args: argparse.Namespace) -> int:
    params = {"target": args.target} if args.target else None
    r = client.get(f"/subscriptions/{args.subscriber_id}", params=params)
    r.raise_for_status()
    print_json(r.json())
    return 0


def cmd_status(client: httpx.Client, _: argparse.Namespace) -> int:
    r = client.get("/monitoring/status")
    r.raise_for_status()
    print_json(r.json())
    return 0


def cmd_run(client: httpx.Client, _: argparse.Namespace) -> int:
    r = client.post("/monitoring/run")
    r.raise_for_status()
    data = r.json()
    if data["skipped"]:
        print("Tick skipped: circuit breaker is open", file=sys.stderr)
    print_json(data)
    return 0


def cmd_targets(client: httpx.Client, args: argparse.Namespace) -> int:
    r = client.get("/targets", params={"include_inactive": args.all})
    r.raise_for_status()
    for t in r.json():
        state = "" if t["is_active"] else " (inactive)"
        print(f"{t['name']}: {t['display_name']} {t['token_symbol']} @ {t['wallet_address']}{state}")
    return 0


def cmd_add_target(client: httpx.Client, args: argparse.Namespace) -> int:
    body = {
        "name": args.name,
        "display_name": args.display_name,
        "wallet_address": args.wallet_address,
        "priority": args.priority,
        "min_interval_minutes": args.min_interval,
    }
    if args.contract:
        body["contract_address"] = args.contract
    r = client.post("/targets", json=body)
    r.raise_for_status()
    print_json(r.json())
    return 0


def cmd_remove_target(client: httpx.Client, args: argparse.Namespace) -> int:
    r = client.delete(f"/targets/{args.name}")
    r.raise_for_status()
    print_json(r.json())
    return 0


def cmd_restore_target(client: httpx.Client, args: argparse.Namespace) -> int:
    r = client.post(f"/targets/{args.name}/restore")
    r.raise_for_status()
    print_json(r.json())
    return 0


def cmd_refresh(client: httpx.Client, _: argparse.Namespace) -> int:
    r = client.post("/balance/refresh")
    r.raise_for_status()
    print_json(r.json())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Query and manage the balance_monitor API.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--base-url",
        default="http://localhost:8001",
        help="API base URL (default: http://localhost:8001)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=30.0,
        help="Request timeout in seconds (default: 30)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True, help="Command")

    subparsers.add_parser("health", help="GET / health check")

    p = subparsers.add_parser("balance", help="GET /balance/{target}")
    p.add_argument("target", nargs="?", default=None, help="Target name (default target if omitted)")
    p.add_argument("--refresh", action="store_true", help="Bypass the balance cache")

    p = subparsers.add_parser("subscribe", help="PUT /subscriptions/{subscriber_id}")
    p.add_argument("subscriber_id", type=int, help="Telegram chat ID")
    p.add_argument("threshold", help="Alert when balance drops below this (0 disables)")
    p.add_argument("--interval", type=int, default=30, help="Check interval in minutes (default: 30)")
    p.add_argument("--target", default=None, help="Target name")

    p = subparsers.add_parser("unsubscribe", help="DELETE /subscriptions/{subscriber_id}")
    p.add_argument("subscriber_id", type=int, help="Telegram chat ID")
    p.add_argument("--target", default=None, help="Target name")

    p = subparsers.add_parser("show", help="GET /subscriptions/{subscriber_id}")
    p.add_argument("subscriber_id", type=int, help="Telegram chat ID")
    p.add_argument("--target", default=None, help="Target name")

    subparsers.add_parser("status", help="GET /monitoring/status")
    subparsers.add_parser("run", help="POST /monitoring/run (manual tick)")

    p = subparsers.add_parser("targets", help="GET /targets")
    p.add_argument("--all", action="store_true", help="Include soft-deleted targets")

    p = subparsers.add_parser("add-target", help="POST /targets")
    p.add_argument("name", help="Target name (lowercase, digits, underscores)")
    p.add_argument("display_name", help="Human readable name")
    p.add_argument("wallet_address", help="Wallet to monitor")
    p.add_argument("--contract", default=None, help="Token contract (default: BSC USDT)")
    p.add_argument("--priority", type=int, default=0, help="Lower shows first (default: 0)")
    p.add_argument("--min-interval", type=int, default=30, help="Shortest allowed interval (default: 30)")

    p = subparsers.add_parser("remove-target", help="DELETE /targets/{name} (soft delete)")
    p.add_argument("name", help="Target name")

    p = subparsers.add_parser("restore-target", help="POST /targets/{name}/restore")
    p.add_argument("name", help="Target name")

    subparsers.add_parser("refresh", help="POST /balance/refresh (clear the balance cache)")
    return parser


HANDLERS = {
    "health": cmd_health,
    "balance": cmd_balance,
    "subscribe": cmd_subscribe,
    "unsubscribe": cmd_unsubscribe,
    "show": cmd_show,
    "status": cmd_status,
    "run": cmd_run,
    "targets": cmd_targets,
    "add-target": cmd_add_target,
    "remove-target": cmd_remove_target,
    "restore-target": cmd_restore_target,
    "refresh": cmd_refresh,
}


def main(argv: list[str] | None = None, client: httpx.Client | None = None) -> int:
    args = build_parser().parse_args(argv)
    handler = HANDLERS[args.command]
    try:
        if client is not None:
            return handler(client, args)
        with httpx.Client(base_url=args.base_url.rstrip("/"), timeout=args.timeout) as c:
            return handler(c, args)
    except httpx.HTTPStatusError as e:
        print(f"HTTP error: {e.response.status_code}", file=sys.stderr)
        if e.response.content:
            try:
                print(e.response.json(), file=sys.stderr)
            except ValueError:
                print(e.response.text, file=sys.stderr)
        return 1
    except httpx.RequestError as e:
        print(f"Request error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
