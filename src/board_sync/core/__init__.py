"""Remote board access: REST client, request builder and transport."""

from .async_utils import run_sync
from .client import BoardClient
from .transport import RequestTransport

__all__ = ["BoardClient", "RequestTransport", "run_sync"]
