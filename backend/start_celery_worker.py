#!/usr/bin/env python3
"""Start a Celery worker consuming the import and export queues."""

import sys
import warnings

# Suppress the superuser privilege warning in containers
warnings.filterwarnings('ignore', category=UserWarning, message='.*superuser privileges.*')
warnings.filterwarnings('ignore', category=RuntimeWarning, message='.*superuser privileges.*')

from pim_transfer.core.config import get_settings
from pim_transfer.workers.celery_app import celery_app

if __name__ == '__main__':
    settings = get_settings()
    celery_app.worker_main(
        argv=[
            'worker',
            f'--loglevel={settings.log_level.lower()}',
            f'--queues={settings.import_queue},{settings.export_queue}',
            '--pool=solo',
            '--without-mingle',
            '--without-gossip',
        ] + sys.argv[1:]
    )
