#!/usr/bin/env python
"""Re-run ingestion for a stored FI batch.

Dry-run by default: the batch is ingested inside a transaction that is rolled
back, so the counts show what a replay would store. Pass --write to commit.

Usage:
    python -m scripts.replay_batch --list
    python -m scripts.replay_batch SESSION_ID
    python -m scripts.replay_batch SESSION_ID --write
    python -m scripts.replay_batch SESSION_ID --verbose
"""

import argparse
import sys

from database import get_session_local
from integrations.exceptions import ProviderError
from logging_config import setup_logging
from models import FIBatch
from services.ingestion_service import BatchNotFoundError, IngestionService


def list_batches(db, limit: int) -> None:
    batches = db.query(FIBatch).order_by(FIBatch.created_at.desc()).limit(limit).all()
    if not batches:
        print("No batches stored.")
        return
    print(f"{'SESSION':<40} {'STATUS':<11} {'DELIVERIES':>10} {'FETCHED':>8} {'PROCESSED':>9}")
    for batch in batches:
        print(
            f"{batch.session_id:<40} {batch.status:<11} {batch.delivery_count:>10} "
            f"{batch.records_fetched:>8} {batch.records_processed:>9}"
        )


def replay(db, session_id: str, write: bool, verbose: bool) -> int:
    """Ingest one batch and print the result. Returns a process exit code."""
    try:
        result = IngestionService().ingest_batch(db, session_id)
    except BatchNotFoundError:
        print(f"Error: no batch with session id {session_id}")
        return 1
    except (ValueError, ProviderError) as e:
        print(f"Error: {e}")
        return 1

    print(f"\nBatch {session_id} ({'WRITE' if write else 'DRY RUN'})")
    print(f"  Accounts:     {result.accounts_processed}/{result.accounts_attempted}")
    print(
        f"  Holdings:     {result.holdings_inserted} new, {result.holdings_duplicate} duplicate"
        f" ({result.holdings_processed}/{result.holdings_attempted} parsed)"
    )
    print(
        f"  Transactions: {result.transactions_inserted} new, {result.transactions_duplicate} duplicate"
        f" ({result.transactions_processed}/{result.transactions_attempted} parsed)"
    )
    if result.errors:
        print(f"  Errors ({len(result.errors)}):")
        shown = result.errors if verbose else result.errors[:5]
        for error in shown:
            print(f"    ! {error}")
        if len(shown) < len(result.errors):
            print(f"    ... {len(result.errors) - len(shown)} more (use --verbose)")

    if write:
        db.commit()
        print("\nCommitted.")
    else:
        db.rollback()
        print("\nRolled back (pass --write to persist).")
    return 0 if result.success else 2


def main():
    parser = argparse.ArgumentParser(description="Replay ingestion for a stored FI batch")
    parser.add_argument("session_id", nargs="?", help="Provider session id of the batch")
    parser.add_argument("--list", action="store_true", help="List recent batches and exit")
    parser.add_argument("--limit", type=int, default=20, help="Batches to list (default: 20)")
    parser.add_argument("--write", action="store_true", help="Commit the replay")
    parser.add_argument("--verbose", action="store_true", help="Show every parse error")
    args = parser.parse_args()

    setup_logging("DEBUG" if args.verbose else None)
    db = get_session_local()()
    try:
        if args.list:
            list_batches(db, args.limit)
            return
        if not args.session_id:
            parser.error("session_id is required unless --list is given")
        sys.exit(replay(db, args.session_id, args.write, args.verbose))
    finally:
        db.close()


if __name__ == "__main__":
    main()
