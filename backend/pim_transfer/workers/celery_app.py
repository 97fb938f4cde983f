"""Celery application for background import and export processing."""

import ssl

from celery import Celery

from pim_transfer.core.config import get_settings
from pim_transfer.core.logging import configure_logging

settings = get_settings()
configure_logging(settings.log_level)


def _tls_url(url: str) -> str:
    # Upstash only accepts TLS; Celery's Redis backend wants ssl_cert_reqs in the URL
    if ".upstash.io" in url and url.startswith("redis://"):
        url = url.replace("redis://", "rediss://", 1)
    if url.startswith("rediss://") and "ssl_cert_reqs" not in url:
        separator = "&" if "?" in url else "?"
        url = f"{url}{separator}ssl_cert_reqs=none"
    return url


broker_url = _tls_url(settings.broker_url)
backend_url = _tls_url(settings.result_backend_url)

celery_app = Celery(
    "pim_transfer",
    broker=broker_url,
    backend=backend_url,
    include=[
        "pim_transfer.workers.tasks.process_import",
        "pim_transfer.workers.tasks.process_export",
    ],
)

celery_config = {
    "task_serializer": "json",
    "accept_content": ["json"],
    "result_serializer": "json",
    "timezone": "UTC",
    "enable_utc": True,
    "task_acks_late": True,  # Acknowledge after task completion
    "task_reject_on_worker_lost": True,  # Re-queue if worker dies
    "worker_prefetch_multiplier": 1,
    "task_time_limit": 3600,
    "task_soft_time_limit": 3300,
    "result_expires": 3600,
    "broker_connection_retry_on_startup": True,
    "worker_hijack_root_logger": False,
    "task_default_queue": settings.import_queue,
    "task_routes": {
        "pim_transfer.workers.tasks.process_import": {"queue": settings.import_queue},
        "pim_transfer.workers.tasks.process_export": {"queue": settings.export_queue},
    },
}

if broker_url.startswith("rediss://") or backend_url.startswith("rediss://"):
    ssl_options = {"ssl_cert_reqs": ssl.CERT_NONE}
    celery_config["broker_use_ssl"] = ssl_options
    celery_config["redis_backend_use_ssl"] = ssl_options

celery_app.conf.update(celery_config)