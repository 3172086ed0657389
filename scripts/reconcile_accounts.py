"""
Link every account to the berths and land-storage slots that carry its phone
number or email. Safe to re-run: existing links are never removed.

Usage:
    python scripts/reconcile_accounts.py [--max-attempts N]
"""
import sys
import os
import argparse
import json

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from marina.db import session_scope
from marina.logging import setup_logging
from marina.services.identity import reconcile_all


def main():
    parser = argparse.ArgumentParser(description="Bulk-link accounts to ledger entries by phone/email")
    parser.add_argument("--max-attempts", type=int, default=None, help="Retries per link before it is skipped")
    args = parser.parse_args()

    setup_logging()
    with session_scope() as db:
        summary = reconcile_all(db, max_attempts=args.max_attempts)

    print(json.dumps(summary.as_dict(), indent=2))
    if summary.failures:
        print(f"⚠️  {len(summary.failures)} link(s) failed, see log for details")
        sys.exit(1)
    print(f"✅ {summary.links_created} new link(s) across {summary.accounts_scanned} account(s)")


if __name__ == "__main__":
    main()
