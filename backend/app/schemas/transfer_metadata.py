"""
Transaction metadata variants.

The ``transactions.metadata`` JSON column holds one of these shapes, tagged
by ``status``. Only the fields valid for a state exist on its model; the
dict form is produced and parsed here and nowhere else.
"""
from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union, Dict, Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _TransferMetadataBase(BaseModel):
    model_config = ConfigDict(extra="ignore")

    transfer_type: str
    recipient_info: str
    bank_name: Optional[str] = None
    risk_score: int = 0
    risk_level: str = "LOW"
    risk_factors: List[str] = Field(default_factory=list)
    requires_manual_review: bool = False
    requires_approval: bool = False
    submitted_at: datetime


class PendingTransferMetadata(_TransferMetadataBase):
    status: Literal["pending"] = "pending"


class CompletedTransferMetadata(_TransferMetadataBase):
    status: Literal["completed"] = "completed"


class ApprovedTransferMetadata(_TransferMetadataBase):
    status: Literal["approved"] = "approved"
    approved_at: datetime
    approved_by: int
    reason: Optional[str] = None


class RejectedTransferMetadata(_TransferMetadataBase):
    status: Literal["rejected"] = "rejected"
    rejected_at: datetime
    rejected_by: int
    reason: str


class FailedTransferMetadata(_TransferMetadataBase):
    status: Literal["failed"] = "failed"
    failed_at: datetime
    reason: str


TransferMetadata = Annotated[
    Union[
        PendingTransferMetadata,
        CompletedTransferMetadata,
        ApprovedTransferMetadata,
        RejectedTransferMetadata,
        FailedTransferMetadata,
    ],
    Field(discriminator="status"),
]

_metadata_adapter = TypeAdapter(TransferMetadata)


def load_metadata(raw: Optional[Dict[str, Any]]):
    if not raw:
        return None
    return _metadata_adapter.validate_python(raw)


def dump_metadata(meta) -> Dict[str, Any]:
    return meta.model_dump(mode="json", exclude_none=True)


def _carry(meta: _TransferMetadataBase) -> Dict[str, Any]:
    return meta.model_dump(include=set(_TransferMetadataBase.model_fields))


def approved_from(meta: PendingTransferMetadata, admin_id: int, at: datetime, reason: Optional[str] = None) -> ApprovedTransferMetadata:
    return ApprovedTransferMetadata(**_carry(meta), approved_at=at, approved_by=admin_id, reason=reason)


def rejected_from(meta: PendingTransferMetadata, admin_id: int, at: datetime, reason: str) -> RejectedTransferMetadata:
    return RejectedTransferMetadata(**_carry(meta), rejected_at=at, rejected_by=admin_id, reason=reason)


def failed_from(meta: _TransferMetadataBase, at: datetime, reason: str) -> FailedTransferMetadata:
    return FailedTransferMetadata(**_carry(meta), failed_at=at, reason=reason)
