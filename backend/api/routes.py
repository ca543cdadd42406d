"""REST API routes for the scan service."""

import logging

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from discovery.controller import DiscoveryController
from discovery.prompts import PromptBroker, PromptKind, PromptNotFound

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

# These will be injected by main.py at startup
_controller: DiscoveryController | None = None
_prompts: PromptBroker | None = None


def init_routes(controller: DiscoveryController, prompts: PromptBroker) -> None:
    """Inject service dependencies into the routes module."""
    global _controller, _prompts
    _controller = controller
    _prompts = prompts


def scan_status() -> dict:
    """Session state, last failure and devices, as served to frontends."""
    failure = _controller.last_failure()
    return {
        "state": _controller.current_state().value,
        "failure": failure.model_dump(mode="json") if failure else None,
        "devices": [d.model_dump() for d in _controller.devices()],
    }


# --- Scan session ---

@router.get("/scan")
async def get_scan():
    """Current session state, last failure and devices found so far."""
    return scan_status()


@router.post("/scan/start")
async def start_scan():
    await _controller.start_scan()
    return scan_status()


@router.post("/scan/cancel")
async def cancel_scan():
    await _controller.cancel_scan()
    return scan_status()


@router.get("/devices")
async def list_devices():
    """Return discovered devices in discovery order."""
    return {"devices": [d.model_dump() for d in _controller.devices()]}


# --- Prompts ---

class PromptAnswer(BaseModel):
    granted: list[str] | None = None
    accept: bool | None = None


@router.get("/prompts")
async def list_prompts():
    return {"prompts": [p.model_dump(mode="json") for p in _prompts.open_prompts()]}


@router.post("/prompts/{prompt_id}/respond")
async def respond_to_prompt(prompt_id: str, body: PromptAnswer):
    """Answer a permission or radio-enable prompt."""
    prompt = next((p for p in _prompts.open_prompts() if p.prompt_id == prompt_id), None)
    if prompt is None:
        raise HTTPException(status_code=404, detail="Prompt not found")

    if prompt.kind == PromptKind.PERMISSION:
        if body.granted is None:
            raise HTTPException(status_code=400, detail="'granted' is required")
        answer = body.granted
    else:
        if body.accept is None:
            raise HTTPException(status_code=400, detail="'accept' is required")
        answer = body.accept

    try:
        _prompts.respond(prompt_id, answer)
    except PromptNotFound:
        raise HTTPException(status_code=404, detail="Prompt not found")
    return {"status": "answered"}
