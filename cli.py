#!/usr/bin/env python3
"""
Command-line interface for the nursery storefront.

Usage:
    python cli.py [command] [options]

Commands:
    demo        Run demo scenarios
    report      Print an admin report as JSON
    test        Run the test suite
    serve       Start the API server

Examples:
    python cli.py demo checkout
    python cli.py report sales --start 2026-09-01 --end 2026-09-30
    python cli.py serve --reload
"""

import argparse
import subprocess
import sys
from datetime import date, timedelta

REPORTS = ["sales", "products", "customers", "shipping", "pickup"]
SCENARIOS = ["checkout", "pickup", "restock", "promotion", "all"]


def run_demo(scenario: str) -> None:
    """Run a demo scenario."""
    from commerce import demo

    if scenario == "all":
        demo.run_all()
    elif scenario in demo.SCENARIOS:
        demo.SCENARIOS[scenario]()
    else:
        print(f"Unknown scenario: {scenario}")
        sys.exit(1)


def run_report(name: str, start: date, end: date) -> None:
    """Print a report for the date range."""
    from commerce.services.reports import ReportsService

    if start > end:
        print("--start must be on or before --end")
        sys.exit(1)

    reports = ReportsService()
    report = getattr(reports, f"{name}_report")(start, end)
    print(report.model_dump_json(indent=2))


def run_tests(args: list[str]) -> None:
    """Run the test suite."""
    cmd = [sys.executable, "-m", "pytest"] + args
    sys.exit(subprocess.run(cmd).returncode)


def run_server(host: str, port: int, reload: bool) -> None:
    """Start the API server."""
    cmd = [sys.executable, "-m", "uvicorn", "api.main:app", f"--host={host}", f"--port={port}"]
    if reload:
        cmd.append("--reload")

    print(f"Starting server at http://{host}:{port}")
    print(f"API docs available at http://{host}:{port}/docs")
    subprocess.run(cmd)


def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Nursery Storefront CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s demo checkout
  %(prog)s demo all
  %(prog)s report products --start 2026-09-01 --end 2026-09-30
  %(prog)s test -v
  %(prog)s serve --reload
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Demo command
    demo_parser = subparsers.add_parser("demo", help="Run demo scenarios")
    demo_parser.add_argument("scenario", choices=SCENARIOS, help="Which scenario to run")

    # Report command
    today = date.today()
    report_parser = subparsers.add_parser("report", help="Print an admin report")
    report_parser.add_argument("name", choices=REPORTS, help="Which report")
    report_parser.add_argument(
        "--start",
        type=date.fromisoformat,
        default=today - timedelta(days=29),
        help="First day (YYYY-MM-DD), default 30 days ago",
    )
    report_parser.add_argument(
        "--end",
        type=date.fromisoformat,
        default=today,
        help="Last day (YYYY-MM-DD), default today",
    )

    # Test command
    test_parser = subparsers.add_parser("test", help="Run the test suite")
    test_parser.add_argument(
        "pytest_args",
        nargs="*",
        default=[],
        help="Arguments to pass to pytest",
    )

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    serve_parser.add_argument("--reload", action="store_true", help="Enable auto-reload")

    args = parser.parse_args()

    if args.command == "demo":
        run_demo(args.scenario)
    elif args.command == "report":
        run_report(args.name, args.start, args.end)
    elif args.command == "test":
        run_tests(args.pytest_args)
    elif args.command == "serve":
        run_server(args.host, args.port, args.reload)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
