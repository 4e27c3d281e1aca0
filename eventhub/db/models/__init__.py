from eventhub.db.models.audit import AuditLog
from eventhub.db.models.project import Project
from eventhub.db.models.retraction import RetractionIntent
from eventhub.db.models.user import User
from eventhub.db.models.vendor import Vendor, VendorRequest

__all__ = [
    "AuditLog",
    "Project",
    "RetractionIntent",
    "User",
    "Vendor",
    "VendorRequest",
]
