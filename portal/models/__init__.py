from portal.models.activity_log import ActivityLog
from portal.models.document import Document, DocumentVersion
from portal.models.document_request import DocumentRequest
from portal.models.folder import Folder
from portal.models.organization import Organization
from portal.models.service_type import ServiceType
from portal.models.signature import Signature, SignatureRequest
from portal.models.user import User

__all__ = [
    "ActivityLog",
    "Document",
    "DocumentVersion",
    "DocumentRequest",
    "Folder",
    "Organization",
    "ServiceType",
    "Signature",
    "SignatureRequest",
    "User",
]
