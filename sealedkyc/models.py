from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional


class ProviderChange(BaseModel):
    provider: str = Field(min_length=1)


class CooldownUpdate(BaseModel):
    cooldown_seconds: int


class SubmissionRequest(BaseModel):
    user: str = Field(min_length=1)
    age_handle: str
    country_handle: str


class VerificationRequest(BaseModel):
    batch_id: int
    user: str = Field(min_length=1)


class OracleResponse(BaseModel):
    correlation_id: int
    cleartexts_hex: str
    proof_b64: str


class CooldownChange(BaseModel):
    old: int
    new: int


class StatusResponse(BaseModel):
    available: bool
    paused: bool
    cooldown_seconds: int
    current_batch_id: int
    service_identity: str
    oracle_kid: Optional[str] = None


class VerificationTicket(BaseModel):
    correlation_id: int
    batch_id: int


class DisclosureResponse(BaseModel):
    correlation_id: int
    batch_id: int
    value: int


class EventsResponse(BaseModel):
    events: List[Dict[str, Any]] = Field(default_factory=list)
