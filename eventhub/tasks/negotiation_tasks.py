import asyncio
import uuid

from eventhub.common.logging import get_logger
from eventhub.tasks.celery_app import app

logger = get_logger("tasks.negotiation")


def _run_async(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def _release_connections():
    # Pooled connections are bound to the loop that opened them.
    from eventhub.db.session import engine

    await engine.dispose()


@app.task(name="eventhub.tasks.negotiation_tasks.retract_siblings_for_request")
def retract_siblings_for_request(request_id: str):
    logger.info("Retrying retraction of requests competing with %s", request_id)

    async def _retract():
        from eventhub.core.negotiation.engine import OfferNegotiationEngine
        from eventhub.db.session import async_session_factory

        try:
            async with async_session_factory() as db:
                try:
                    counts = await OfferNegotiationEngine().process_pending_intents(
                        db, request_id=uuid.UUID(request_id)
                    )
                    await db.commit()
                    return counts
                except Exception as e:
                    await db.rollback()
                    logger.error("Retraction retry failed for request %s: %s", request_id, e)
                    raise
        finally:
            await _release_connections()

    return _run_async(_retract())


@app.task(name="eventhub.tasks.negotiation_tasks.process_pending_retractions")
def process_pending_retractions():
    """Celery Beat task: finish retractions left incomplete by earlier bookings."""
    logger.info("Processing pending retraction intents")

    async def _process():
        from eventhub.core.negotiation.engine import OfferNegotiationEngine
        from eventhub.db.session import async_session_factory

        try:
            async with async_session_factory() as db:
                try:
                    counts = await OfferNegotiationEngine().process_pending_intents(db)
                    await db.commit()
                    return counts
                except Exception as e:
                    await db.rollback()
                    logger.error("Pending retraction run failed: %s", e)
                    raise
        finally:
            await _release_connections()

    return _run_async(_process())


@app.task(name="eventhub.tasks.negotiation_tasks.reconcile_mirrors")
def reconcile_mirrors():
    """Celery Beat task: rebuild project and vendor mirrors from the ledger."""
    logger.info("Reconciling request mirrors")

    async def _reconcile():
        from eventhub.core.negotiation.mirrors import reconcile_all
        from eventhub.db.session import async_session_factory

        try:
            async with async_session_factory() as db:
                try:
                    repaired = await reconcile_all(db)
                    await db.commit()
                    return repaired
                except Exception as e:
                    await db.rollback()
                    logger.error("Mirror reconciliation failed: %s", e)
                    raise
        finally:
            await _release_connections()

    return _run_async(_reconcile())
