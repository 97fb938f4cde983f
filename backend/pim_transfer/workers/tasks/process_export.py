"""Celery task running queued export work."""

from __future__ import annotations

import logging

from pim_transfer.core.errors import JobStateError
from pim_transfer.services.factory import get_transfer_service
from pim_transfer.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name="pim_transfer.workers.tasks.process_export")
def process_export_task(self, work_id: str) -> dict | None:
    service = get_transfer_service()
    work = service.queue.claim(work_id)
    if work is None:
        logger.info(f"Export work {work_id} was withdrawn; skipping")
        return None
    try:
        record = service.run_export(work)
    except JobStateError as e:
        logger.warning(f"Export work {work_id} rejected: {e} (status={e.current_status})")
        return None
    finally:
        service.queue.ack(work_id)
    return {"job_id": record.id, "status": record.status.value}
