"""Ticket import reconciliation: classify, map and write parsed ticket rows."""

from .errors import ImportLifecycleError
from .lifecycle import accept_import, reclassify_delivery_imports, reject_import, save_draft
from .status import ImportStatus

__all__ = [
    "ImportLifecycleError",
    "ImportStatus",
    "accept_import",
    "reclassify_delivery_imports",
    "reject_import",
    "save_draft",
]
