"""Print a company's inbox and keep it live from the change feed.

Usage:
    DATABASE_URL=... python scripts/watch_inbox.py <company_id> [--interval SECONDS]

Runs with the company-wide scope. Ctrl+C to stop; the LISTEN connection is
released on exit. For local inspection only: names and previews are shown
in clear.
"""

from __future__ import annotations

import argparse
import os
import sys
import time


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("company_id")
    parser.add_argument("--interval", type=float, default=30.0, help="polling fallback in seconds (0 disables)")
    args = parser.parse_args()

    if not os.environ.get("DATABASE_URL"):
        print("ERROR: DATABASE_URL not set")
        sys.exit(1)

    # Import after env validation so a missing DB does not blow up on import
    from atende.domain.phone import format_phone
    from atende.domain.scope import Scope
    from atende.infra.db import txn
    from atende.infra.realtime import RealtimeListener
    from atende.infra.repositories import companies_repository
    from atende.services.inbox import Inbox, LiveInbox

    with txn() as cur:
        company = companies_repository.get_company(cur, args.company_id)
    if company is None:
        print(f"ERROR: company not found: {args.company_id}")
        sys.exit(1)

    def show(inbox: Inbox) -> None:
        print(f"\n=== {company.name}: {len(inbox.conversations)} conversations ===")
        for c in inbox.conversations[:20]:
            print(f"  {c.last_message_time or '-':24}  {format_phone(c.phone_number):18}  {c.name[:24]:24}  {c.last_message[:40]}")

    scope = Scope.company_wide(company.id, company.api_key)
    with RealtimeListener() as listener:
        with LiveInbox(scope, listener, refresh_interval=args.interval or None, on_refresh=show):
            try:
                while True:
                    time.sleep(1)
            except KeyboardInterrupt:
                print("\nstopped")


if __name__ == "__main__":
    main()
