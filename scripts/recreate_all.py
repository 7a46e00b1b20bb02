#!/usr/bin/env python3
"""Recreate the payment schedule of every active policy and proposal.

Discards existing financial records and installments (manual edits
included) and regenerates them from each document's extracted terms.
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from payplan.config import PayPlanConfig
from payplan.logging import setup_logging
from payplan.service.reconciliation import RECREATE_DOCUMENT_TYPES, ReconciliationService
from payplan.sinks import build_audit_sink
from payplan.store.postgres import PostgresDocumentStore

logger = logging.getLogger(__name__)


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Recreate payment schedules in bulk")
    parser.add_argument(
        "--postgres-url",
        type=str,
        default=None,
        help="PostgreSQL connection string (default: POSTGRES_* settings)",
    )
    parser.add_argument(
        "--document-types",
        nargs="+",
        default=list(RECREATE_DOCUMENT_TYPES),
        help="Document types to recreate (default: apolice proposta)",
    )
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Confirm the destructive reset",
    )
    args = parser.parse_args()

    config = PayPlanConfig.from_env()
    setup_logging(config.log_level, config.log_format)

    if not args.yes:
        print("Recreating discards every manual edit. Re-run with --yes to confirm.")
        return 2

    store = PostgresDocumentStore(args.postgres_url or config.postgres)
    sink = build_audit_sink(config)
    try:
        service = ReconciliationService(
            store, config.engine, audit_sink=sink, audit_topic=config.audit.topic
        )
        summary = service.recreate_all_schedules(tuple(args.document_types))
    finally:
        store.close()
        if sink is not None:
            sink.close()

    print(f"Total: {summary.total}  Succeeded: {summary.succeeded}  Failed: {summary.failed}")
    for subject_id, error in summary.errors.items():
        print(f"  {subject_id}: {error}")
    return 1 if summary.failed else 0


if __name__ == "__main__":
    sys.exit(main())
