#!/usr/bin/env python3
"""
PR Insights API launcher

Run the metrics API locally:

    python run_server.py --port 8000

Identity provider settings come from the environment:

    SUPABASE_URL=https://xyz.supabase.co SUPABASE_ANON_KEY=... python run_server.py

Prerequisites:
    pip install -e .
"""

import argparse
import os
import sys


def build_parser():
    parser = argparse.ArgumentParser(
        description="Launch the PR Insights API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_server.py
  python run_server.py --port 9000 --ttl 3600
  python run_server.py --lenient-details --db ./data/metrics.db
        """,
    )
    parser.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")
    parser.add_argument("--ttl", type=int, default=None, help="Metrics cache TTL in seconds (default: 300)")
    parser.add_argument("--db", help="SQLite file for persisted metrics")
    parser.add_argument(
        "--lenient-details",
        action="store_true",
        help="Count PRs whose detail fetch fails with 0 lines instead of failing the request",
    )
    parser.add_argument("--reload", action="store_true", help="Auto-reload on code changes (dev)")
    return parser


def apply_env(args):
    """Export CLI choices as the environment variables the backend reads at import."""
    if args.ttl is not None:
        os.environ["METRICS_CACHE_TTL"] = str(args.ttl)
    if args.lenient_details:
        os.environ["PR_DETAIL_STRICT"] = "false"

    local_data = os.path.join(os.path.dirname(os.path.abspath(__file__)), "data")
    if args.db:
        os.environ["DB_PATH"] = os.path.abspath(args.db)
    else:
        os.makedirs(local_data, exist_ok=True)
        os.environ.setdefault("DB_PATH", os.path.join(local_data, "prinsights.db"))

    # Enable dev docs for local runs
    os.environ.setdefault("ENV", "dev")


def main(argv=None):
    args = build_parser().parse_args(argv)
    apply_env(args)

    # Add backend/ to sys.path so imports resolve
    backend_dir = os.path.join(os.path.dirname(os.path.abspath(__file__)), "backend")
    if backend_dir not in sys.path:
        sys.path.insert(0, backend_dir)

    import database
    database.init_db()

    if not os.environ.get("SUPABASE_URL"):
        print("\nNote: SUPABASE_URL not set; metrics endpoints will answer 500 until it is.\n")

    print(f"\nStarting PR Insights API on http://{args.host}:{args.port}")
    print(f"Database: {os.environ['DB_PATH']}\n")

    import uvicorn
    uvicorn.run("main:app", host=args.host, port=args.port, reload=args.reload,
                app_dir=backend_dir)


if __name__ == "__main__":
    main()
