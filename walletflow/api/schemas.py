from typing import Any, Dict, Optional
from pydantic import BaseModel, Field


class CreateWizardRequest(BaseModel):
    category: str
    # Resume the draft persisted for this category, if any
    restore: bool = True


class DraftPatch(BaseModel):
    changes: Dict[str, Any] = Field(default_factory=dict)


class SubmitRequest(BaseModel):
    pin: str


class LoginRequest(BaseModel):
    token: str


class WizardResponse(BaseModel):
    wizardId: str
    draft: Dict[str, Any]
    wizard: Dict[str, Any]
    canGoBack: bool = False
    pinStatus: Optional[Dict[str, Any]] = None
    balance: Optional[Dict[str, Any]] = None


class SubmitResponse(BaseModel):
    result: Dict[str, Any]
    wizard: WizardResponse
