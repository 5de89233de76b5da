from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class DocumentCategory(str, Enum):
    TAX_RETURN = "tax_return"
    FINANCIAL_STATEMENT = "financial_statement"
    INVOICE = "invoice"
    AGREEMENT = "agreement"
    RECEIPT = "receipt"
    OTHER = "other"


class RequestStatus(str, Enum):
    PENDING = "pending"
    UPLOADED = "uploaded"
    REVIEWED = "reviewed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class SignatureStatus(str, Enum):
    PENDING = "pending"
    SIGNED = "signed"
    DECLINED = "declined"
    CANCELLED = "cancelled"
    # Display only; never persisted.
    EXPIRED = "expired"


class SignatureType(str, Enum):
    DRAW = "draw"
    TYPE = "type"
    UPLOAD = "upload"


class DocumentSortField(str, Enum):
    UPLOADED_AT = "uploaded_at"
    NAME = "name"
    SIZE = "size"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class Disposition(str, Enum):
    DOWNLOAD = "download"
    PREVIEW = "preview"


class CountResponse(BaseModel):
    count: int
