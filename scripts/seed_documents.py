#!/usr/bin/env python3
"""Generate synthetic subject documents with financial payloads.

Documents are written to a JSON file and, optionally, to the PostgreSQL
``subject_documents`` table so the reconciliation engine has something to
materialize schedules from.
"""

import argparse
import json
import logging
import sys
from collections import Counter
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from payplan.config import PayPlanConfig
from payplan.generators import SHAPES, SubjectDocumentGenerator
from payplan.logging import setup_logging
from payplan.sinks.serialization import to_dict
from payplan.store.base import SUBJECT_DOCUMENTS
from payplan.store.financial import subject_to_row
from payplan.store.postgres import PostgresDocumentStore

logger = logging.getLogger(__name__)


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Generate sample subject documents")
    parser.add_argument(
        "--count",
        type=int,
        default=50,
        help="Number of documents to generate (default: 50)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=42,
        help="Random seed for reproducibility (default: 42)",
    )
    parser.add_argument(
        "--shape",
        choices=SHAPES,
        default=None,
        help="Payload shape (default: random per document)",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=project_root / "local" / "subject_documents.json",
        help="JSON output file",
    )
    parser.add_argument(
        "--postgres",
        action="store_true",
        help="Also insert the documents into PostgreSQL (POSTGRES_* settings)",
    )
    args = parser.parse_args()

    config = PayPlanConfig.from_env()
    setup_logging(config.log_level, config.log_format)

    generator = SubjectDocumentGenerator(seed=args.seed)
    documents = list(generator.generate_batch(args.count, shape=args.shape))

    args.output.parent.mkdir(parents=True, exist_ok=True)
    with open(args.output, "w", encoding="utf-8") as f:
        json.dump([to_dict(d) for d in documents], f, indent=2, ensure_ascii=False)
    logger.info("Wrote %d documents to %s", len(documents), args.output)

    if args.postgres:
        store = PostgresDocumentStore(config.postgres)
        try:
            store.create_schema()
            store.insert(SUBJECT_DOCUMENTS, [subject_to_row(d) for d in documents])
        finally:
            store.close()
        logger.info("Inserted %d documents into %s", len(documents), SUBJECT_DOCUMENTS)

    by_type = Counter(d.document_type for d in documents)
    for document_type, count in sorted(by_type.items()):
        print(f"  {document_type}: {count}")


if __name__ == "__main__":
    main()
