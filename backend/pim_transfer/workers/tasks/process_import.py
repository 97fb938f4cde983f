"""Celery task running queued import work."""

from __future__ import annotations

import logging

from pim_transfer.core.errors import JobStateError
from pim_transfer.services.factory import get_transfer_service
from pim_transfer.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name="pim_transfer.workers.tasks.process_import")
def process_import_task(self, work_id: str) -> dict | None:
    """Claim the work item and process its import job.

    Job-level failures are recorded on the job itself, so nothing is re-raised
    to Celery; a missing work item means it was withdrawn by a cancel. The
    item is acknowledged only after the run, whatever its outcome.
    """
    service = get_transfer_service()
    work = service.queue.claim(work_id)
    if work is None:
        logger.info(f"Import work {work_id} was withdrawn; skipping")
        return None
    try:
        record = service.run_import(work)
    except JobStateError as e:
        logger.warning(f"Import work {work_id} rejected: {e} (status={e.current_status})")
        return None
    finally:
        service.queue.ack(work_id)
    return {"job_id": record.id, "status": record.status.value}
