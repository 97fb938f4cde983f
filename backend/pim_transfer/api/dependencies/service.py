"""Transfer service dependency."""

from pim_transfer.services.factory import get_transfer_service
from pim_transfer.services.transfer_service import TransferService


def get_service() -> TransferService:
    """FastAPI dependency returning the process-wide transfer service."""
    return get_transfer_service()
