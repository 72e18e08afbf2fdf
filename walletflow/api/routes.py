from collections import OrderedDict
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException

from walletflow.api.auth import require_api_key
from walletflow.api.schemas import (
    CreateWizardRequest,
    DraftPatch,
    LoginRequest,
    SubmitRequest,
    SubmitResponse,
    WizardResponse,
)
from walletflow.core.engine import WalletEngine
from walletflow.core.state_machine import RESULT
from walletflow.core.wizard import TransactionWizard
from walletflow.settings import settings
from walletflow.observability.logging import log

router = APIRouter(dependencies=[Depends(require_api_key)])

_ENGINE = None
# Live wizards for this process, keyed by wizardId, oldest first
WIZARDS: "OrderedDict[str, TransactionWizard]" = OrderedDict()


def get_engine() -> WalletEngine:
    global _ENGINE
    if _ENGINE is None:
        _ENGINE = WalletEngine()
    return _ENGINE


def _evict_for_new() -> None:
    limit = max(1, int(settings.MAX_LIVE_WIZARDS))
    while len(WIZARDS) >= limit:
        finished = [wid for wid, w in WIZARDS.items() if w.state == RESULT]
        idle = [wid for wid, w in WIZARDS.items() if not w.is_submitting]
        victims = finished or idle
        if not victims:
            break
        WIZARDS.pop(victims[0], None)
        try:
            log(event="wizard_evicted", wizardId=victims[0], live=len(WIZARDS))
        except Exception:
            pass


def _wizard(wizard_id: str) -> TransactionWizard:
    wiz = WIZARDS.get(wizard_id)
    if wiz is None:
        raise HTTPException(status_code=404, detail="Unknown wizard")
    return wiz


@router.post("/wizards", response_model=WizardResponse)
def create_wizard(req: CreateWizardRequest, engine: WalletEngine = Depends(get_engine)):
    wiz = engine.new_wizard(req.category, restore=req.restore)
    _evict_for_new()
    WIZARDS[wiz.wizard_id] = wiz
    return wiz.snapshot()


@router.get("/wizards/{wizard_id}", response_model=WizardResponse)
def get_wizard(wizard_id: str):
    return _wizard(wizard_id).snapshot()


@router.patch("/wizards/{wizard_id}/draft", response_model=WizardResponse)
def patch_draft(wizard_id: str, req: DraftPatch):
    wiz = _wizard(wizard_id)
    wiz.update_draft(**req.changes)
    return wiz.snapshot()


@router.post("/wizards/{wizard_id}/review", response_model=WizardResponse)
async def review(wizard_id: str):
    wiz = _wizard(wizard_id)
    await wiz.to_review()
    return wiz.snapshot()


@router.post("/wizards/{wizard_id}/pin-entry", response_model=WizardResponse)
async def pin_entry(wizard_id: str):
    wiz = _wizard(wizard_id)
    await wiz.to_pin_entry()
    return wiz.snapshot()


@router.post("/wizards/{wizard_id}/submit", response_model=SubmitResponse)
async def submit(wizard_id: str, req: SubmitRequest):
    wiz = _wizard(wizard_id)
    result = await wiz.submit(req.pin)
    return {"result": asdict(result), "wizard": wiz.snapshot()}


@router.post("/wizards/{wizard_id}/back", response_model=WizardResponse)
def back(wizard_id: str):
    wiz = _wizard(wizard_id)
    wiz.back()
    return wiz.snapshot()


@router.delete("/wizards/{wizard_id}")
def discard_wizard(wizard_id: str):
    _wizard(wizard_id)
    WIZARDS.pop(wizard_id, None)
    return {"status": "ok"}


@router.post("/login")
def login(req: LoginRequest, engine: WalletEngine = Depends(get_engine)):
    try:
        engine.login(req.token)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"status": "ok"}


@router.post("/logout")
def logout(engine: WalletEngine = Depends(get_engine)):
    engine.logout()
    return {"status": "ok"}
