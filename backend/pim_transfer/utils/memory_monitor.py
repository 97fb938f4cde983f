"""Worker memory guard checked at batch boundaries."""

import gc
import logging

import psutil

logger = logging.getLogger(__name__)

MB = 1024 * 1024


def get_memory_usage() -> int:
    """Current resident set size of this process in bytes."""
    return psutil.Process().memory_info().rss


def format_bytes(bytes_val: float) -> str:
    """Format bytes to human-readable string."""
    for unit in ["B", "KB", "MB", "GB"]:
        if bytes_val < 1024.0:
            return f"{bytes_val:.1f}{unit}"
        bytes_val /= 1024.0
    return f"{bytes_val:.1f}TB"


def force_gc() -> None:
    collected = gc.collect()
    logger.debug(f"Garbage collection freed {collected} objects")


class MemoryGuard:
    """Compare process memory to a soft baseline and a hard limit.

    Above the baseline a warning is logged and garbage collection forced;
    at or above the limit ``MemoryError`` is raised, which the orchestrator
    treats as a job-level failure.
    """

    def __init__(self, baseline_mb: float, limit_mb: float):
        self.baseline = int(baseline_mb * MB)
        self.limit = int(limit_mb * MB)

    def check(self, context: str = "") -> int:
        current = get_memory_usage()
        context_str = f" [{context}]" if context else ""
        if self.limit and current >= self.limit:
            logger.error(
                f"Memory limit exceeded{context_str}: {format_bytes(current)} >= "
                f"{format_bytes(self.limit)}"
            )
            raise MemoryError(
                f"Worker memory limit exceeded ({format_bytes(current)} of {format_bytes(self.limit)})"
            )
        if self.baseline and current > self.baseline:
            logger.warning(
                f"Memory pressure{context_str}: {format_bytes(current)} / "
                f"{format_bytes(self.limit)} (baseline: {format_bytes(self.baseline)})"
            )
            force_gc()
        return current
