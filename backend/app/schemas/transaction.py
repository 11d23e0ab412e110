from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Optional, List, Literal, Dict, Any
from decimal import Decimal

MIN_TRANSFER_AMOUNT = Decimal("1")
MAX_TRANSFER_AMOUNT = Decimal("50000")

TransferTypeName = Literal["checking", "savings", "external_bank"]


class TransferRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    amount: Decimal = Field(..., ge=MIN_TRANSFER_AMOUNT, le=MAX_TRANSFER_AMOUNT, decimal_places=2)
    recipient_info: str = Field(..., alias="recipientInfo", min_length=1, max_length=500)
    transfer_type: TransferTypeName = Field(..., alias="transferType")
    bank_name: Optional[str] = Field(None, alias="bankName", max_length=120)
    description: Optional[str] = Field(None, max_length=255)

    @model_validator(mode="after")
    def _bank_name_only_for_external(self):
        if self.transfer_type == "external_bank":
            if not self.bank_name:
                raise ValueError("Bank name is required for external transfers")
        else:
            self.bank_name = None
        return self

    @property
    def is_external(self) -> bool:
        return self.transfer_type == "external_bank"


class AdminReviewRequest(BaseModel):
    action: Literal["approve", "reject"]
    reason: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def _reason_required_on_reject(self):
        if self.action == "reject" and not (self.reason and self.reason.strip()):
            raise ValueError("Reason is required when rejecting a transfer")
        return self


class AdminApproveRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class AdminRejectRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class RiskAssessmentResponse(BaseModel):
    riskScore: int
    riskLevel: str
    riskFactors: List[str]
    requiresManualReview: bool


class TransferCreatedResponse(BaseModel):
    success: bool = True
    message: str
    transaction: Dict[str, Any]
    riskAssessment: RiskAssessmentResponse


class TransferListResponse(BaseModel):
    transfers: List[Dict[str, Any]]
    count: int
