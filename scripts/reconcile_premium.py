"""Rewrite premium entitlements from Stripe's current subscription state."""

import argparse
import json

from dotenv import load_dotenv

from app.config import settings
from app.db import SessionLocal
from app.logging import configure_logging
from app.services.billing.factory import plan_tags, stripe_provider
from app.services.billing.reconcile import ReconciliationSweep
from app.services.billing.store import BillingStore


def parse_args():
    parser = argparse.ArgumentParser(description="Reconcile premium entitlements.")
    parser.add_argument(
        "--limit", type=int, default=None, help="Only check the first N customers."
    )
    return parser.parse_args()


def main() -> None:
    load_dotenv()
    configure_logging()
    args = parse_args()
    db = SessionLocal()
    try:
        sweep = ReconciliationSweep(
            BillingStore(db), stripe_provider(settings), plan_tags(settings)
        )
        result = sweep.run(limit=args.limit)
        print(json.dumps(result.as_dict()))
    finally:
        db.close()


if __name__ == "__main__":
    main()
