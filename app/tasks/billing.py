import logging

from app.celery_app import celery_app
from app.config import settings
from app.db import SessionLocal
from app.services.billing.factory import plan_tags, stripe_provider
from app.services.billing.reconcile import ReconciliationSweep
from app.services.billing.store import BillingStore

logger = logging.getLogger(__name__)


@celery_app.task(name="app.tasks.billing.reconcile_premium")
def reconcile_premium(limit: int | None = None) -> dict:
    logger.info("Starting reconciliation sweep")
    session = SessionLocal()
    try:
        sweep = ReconciliationSweep(
            BillingStore(session), stripe_provider(settings), plan_tags(settings)
        )
        return sweep.run(limit=limit).as_dict()
    finally:
        session.close()
