"""
Scripts Router — Generate, preview, simulate, save, download and delete pop-under snippets.

Snippets are always generated from the user's currently selected campaigns.
Saved scripts are immutable: there is no update endpoint.
"""

import logging
from datetime import datetime
from typing import Literal, Optional
from urllib.parse import quote
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from starlette.responses import Response

from popdash.auth import get_record_store
from popdash.models import GeneratedScript
from popdash.schemas import PopunderConfig, VariantValue
from popdash.services.popunder_generator import (
    PopunderGenerator, ascii_filename, render_javascript, script_filename, script_size_kb,
)
from popdash.services.popunder_runtime import RecordingHost
from popdash.services.record_store import RecordStore, snapshot_to_record
from popdash.utils import parse_uuid

logger = logging.getLogger(__name__)
router = APIRouter()


# ── Schemas ───────────────────────────────────────────────────────────

class GenerateRequest(BaseModel):
    config: PopunderConfig


class DownloadRequest(BaseModel):
    config: PopunderConfig
    variant: VariantValue = "production"


class SaveScriptRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    config: PopunderConfig
    variant: VariantValue = "production"


class SimulationEvent(BaseModel):
    type: Literal["click", "timer", "scroll"]
    internal_link: bool = False
    scroll_y: float = 0
    scroll_height: float = 0
    viewport_height: float = 0


class SimulateRequest(BaseModel):
    config: PopunderConfig
    variant: VariantValue = "preview"
    user_agent: str = ""
    timezone: str = ""
    session_triggered: bool = False
    block_popups: bool = False
    events: list[SimulationEvent] = Field(default_factory=lambda: [SimulationEvent(type="click")])


class ScriptSummary(BaseModel):
    id: str
    name: str
    script_type: str
    config: dict
    campaign_ids: list[str]
    campaigns: list[dict]
    size_kb: float
    created_at: datetime
    code: Optional[str] = None


# ── Helpers ───────────────────────────────────────────────────────────

async def _selected_campaigns(store: RecordStore) -> list:
    rows = await store.list_campaigns()
    selected = [snapshot_to_record(r) for r in rows if r.is_selected]
    if not selected:
        raise HTTPException(status_code=400, detail="Select at least one campaign before generating a script.")
    return selected


def _script_to_response(script: GeneratedScript, campaigns_by_id: dict, include_code: bool = False) -> dict:
    return {
        "id": str(script.id),
        "name": script.name,
        "script_type": script.script_type,
        "config": script.config,
        "campaign_ids": script.campaign_ids,
        # Resolved against the current snapshot; campaigns since replaced drop out
        "campaigns": [campaigns_by_id[cid] for cid in script.campaign_ids if cid in campaigns_by_id],
        "size_kb": script_size_kb(script.script_code),
        "created_at": script.created_at,
        "code": script.script_code if include_code else None,
    }


async def _campaigns_by_id(store: RecordStore) -> dict:
    rows = await store.list_campaigns()
    return {r.campaign_id: snapshot_to_record(r).model_dump(mode="json") for r in rows}


async def _get_script_or_404(store: RecordStore, script_id: str) -> GeneratedScript:
    script = await store.get_script(parse_uuid(script_id, "script_id"))
    if not script:
        raise HTTPException(status_code=404, detail="Script not found")
    return script


def _content_disposition(filename: str) -> str:
    """Attachment header with an ASCII fallback name plus the UTF-8 name (RFC 5987)."""
    fallback = ascii_filename(filename)
    if fallback == filename:
        return f'attachment; filename="{filename}"'
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


def _javascript_download(code: str, filename: str) -> Response:
    return Response(
        content=code,
        media_type="text/javascript",
        headers={"Content-Disposition": _content_disposition(filename)},
    )


# ── Endpoints ─────────────────────────────────────────────────────────

@router.get("/default-config")
async def default_config():
    return PopunderConfig.default().to_literal()


@router.post("/generate")
async def generate_scripts(payload: GenerateRequest, store: RecordStore = Depends(get_record_store)):
    """Production and preview snippets for the selected campaigns."""
    campaigns = await _selected_campaigns(store)
    generator = PopunderGenerator()
    production = generator.generate_script(campaigns, payload.config)
    preview = generator.generate_preview_script(campaigns, payload.config)
    return {
        "campaign_ids": [c.id for c in campaigns],
        "campaign_count": len(campaigns),
        "production": {"code": production, "size_kb": script_size_kb(production)},
        "preview": {"code": preview, "size_kb": script_size_kb(preview)},
    }


@router.post("/download")
async def download_generated_script(payload: DownloadRequest, store: RecordStore = Depends(get_record_store)):
    """Download an unsaved snippet as popunder-<variant>.js."""
    campaigns = await _selected_campaigns(store)
    code = PopunderGenerator().generate(campaigns, payload.config, payload.variant)
    return _javascript_download(code, f"popunder-{payload.variant}.js")


@router.post("/simulate")
async def simulate_script(payload: SimulateRequest, store: RecordStore = Depends(get_record_store)):
    """
    Run a snippet against a simulated page: a user agent, a timezone and a
    sequence of click/timer/scroll events. Nothing is opened for real.
    """
    campaigns = await _selected_campaigns(store)
    program = PopunderGenerator().build(campaigns, payload.config, payload.variant)
    session = {program.session_key: "true"} if payload.session_triggered else {}
    host = RecordingHost(
        user_agent=payload.user_agent,
        timezone=payload.timezone,
        session=session,
        block_popups=payload.block_popups,
    )
    runtime = program.runtime(host)
    chosen = runtime.select_best_campaign()

    fired = []
    for event in payload.events:
        if event.type == "click":
            fired.append(runtime.on_click(internal_link=event.internal_link))
        elif event.type == "timer":
            fired.append(runtime.on_timer())
        else:
            fired.append(runtime.on_scroll(event.scroll_y, event.scroll_height, event.viewport_height))

    return {
        "variant": program.variant,
        "test_mode": runtime.test_mode,
        "device": runtime.device_type(),
        "country": runtime.user_country(),
        "selected_campaign": chosen.model_dump(mode="json") if chosen else None,
        "timer_delay_seconds": runtime.timer_delay_seconds if runtime.trigger_type == "time" else None,
        "scroll_threshold": runtime.scroll_threshold if runtime.trigger_type == "scroll" else None,
        "fired": fired,
        "opened": [url for url, _ in host.opened],
        "beacons": [body for _, body in host.beacons],
        "session_triggered": runtime.session_triggered(),
        "logs": host.logs,
    }


@router.post("", response_model=ScriptSummary)
async def save_script(payload: SaveScriptRequest, store: RecordStore = Depends(get_record_store)):
    name = payload.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Script name is required.")
    campaigns = await _selected_campaigns(store)
    program = PopunderGenerator().build(campaigns, payload.config, payload.variant)
    script = await store.save_script(
        name=name,
        code=render_javascript(program),
        config=payload.config,
        campaign_ids=list(program.campaign_ids),
        script_type=payload.variant,
    )
    if script is None:
        raise HTTPException(status_code=500, detail="Failed to save script. Please try again.")
    logger.info(f"Saved {payload.variant} script '{name}' for user {store.owner_id}")
    return _script_to_response(script, await _campaigns_by_id(store))


@router.get("", response_model=list[ScriptSummary])
async def list_scripts(store: RecordStore = Depends(get_record_store)):
    """Saved scripts, newest first."""
    scripts = await store.list_scripts()
    campaigns_by_id = await _campaigns_by_id(store)
    return [_script_to_response(s, campaigns_by_id) for s in scripts]


@router.get("/{script_id}", response_model=ScriptSummary)
async def get_script(script_id: str, store: RecordStore = Depends(get_record_store)):
    script = await _get_script_or_404(store, script_id)
    return _script_to_response(script, await _campaigns_by_id(store), include_code=True)


@router.get("/{script_id}/download")
async def download_script(script_id: str, store: RecordStore = Depends(get_record_store)):
    script = await _get_script_or_404(store, script_id)
    return _javascript_download(script.script_code, script_filename(script.name))


@router.delete("/{script_id}")
async def delete_script(script_id: str, store: RecordStore = Depends(get_record_store)):
    script = await _get_script_or_404(store, script_id)
    if not await store.delete_script(script.id):
        raise HTTPException(status_code=500, detail="Failed to delete script. Please try again.")
    return {"deleted": True, "id": script_id}
