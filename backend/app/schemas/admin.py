from pydantic import BaseModel
from typing import List, Dict, Any


class PaginationInfo(BaseModel):
    page: int
    limit: int
    total: int
    totalPages: int
    hasNext: bool
    hasPrev: bool


class PendingTransfersResponse(BaseModel):
    transfers: List[Dict[str, Any]]
    pagination: PaginationInfo


class TransferStatusStats(BaseModel):
    count: int
    volume: float


class TransferStatsResponse(BaseModel):
    stats: Dict[str, TransferStatusStats]
    total_count: int
    total_volume: float


class ConnectionSnapshotResponse(BaseModel):
    connected_users: int
    total_connections: int
    user_connections: Dict[str, int]


class RiskRuleResponse(BaseModel):
    rule: str
    weight: int
    label: str


class RiskRulesResponse(BaseModel):
    rules: List[RiskRuleResponse]
