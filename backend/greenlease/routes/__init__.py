"""GreenLease Routes"""

from .contracts import router as contracts_router
from .signature import router as signature_router
from .wizard import router as wizard_router

__all__ = [
    "contracts_router",
    "signature_router",
    "wizard_router",
]
