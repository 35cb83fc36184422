#!/usr/bin/env python3
"""
Portal - server-rendered web app with provider-backed cookie sessions.
"""

import argparse
import logging
import sys

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", stream=sys.stderr
)

logger = logging.getLogger(__name__)


def init_db() -> int:
    """Create the users table if it does not exist."""
    from portal.storage.config import get_db_connection
    from portal.storage.users import ensure_users_table

    conn = get_db_connection()
    if not conn:
        logger.error("Database not configured (set POSTGRES_DSN or POSTGRES_HOST/DB/USER/PASSWORD)")
        return 1
    try:
        ensure_users_table(conn)
    finally:
        conn.close()
    logger.info("Users table is ready")
    return 0


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Run the portal web server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create the users table
  python main.py --init-db

  # Serve on port 3000
  python main.py --serve --port 3000
        """,
    )
    parser.add_argument("--serve", action="store_true", help="Run the HTTP server")
    parser.add_argument("--init-db", action="store_true", help="Create the users table (idempotent)")
    parser.add_argument("--host", default="0.0.0.0", help="Server bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8080, help="Server listen port (default: 8080)")

    args = parser.parse_args()

    if args.init_db:
        code = init_db()
        if code or not args.serve:
            sys.exit(code)

    if args.serve:
        from portal.api.app import run

        run(host=args.host, port=args.port)
        return

    parser.print_help()


if __name__ == "__main__":
    main()
