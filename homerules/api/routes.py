from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from ..core.config import settings
from ..core.timeutil import now_local
from ..domain.errors import DeviceNotFound, ExternalCallError, ParseError, RuleNotFound
from ..domain.models import ExecuteResult, RuleSpec
from ..domain.parser import normalize
from ..domain.rule_manager import RuleManager
from ..sensors.simulated_room_sensor import SimulatedRoomSensor
from ..services.poller import SensorPoller
from ..storage.sqlite_repo import SQLiteRepository
from .schemas import (
    ExecuteRequest,
    RuleCreateRequest,
    SensorSnapshotIn,
    SimSensorRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# --- Dependency getters ---
# main.py replaces these through app.dependency_overrides.
def get_manager() -> RuleManager:  # overridden in main
    raise RuntimeError("Rule manager dependency not configured")

def get_repo() -> SQLiteRepository:  # overridden in main
    raise RuntimeError("Repo dependency not configured")

def get_poller() -> SensorPoller:  # overridden in main
    raise RuntimeError("Poller dependency not configured")

def get_sim_sensors() -> dict[str, SimulatedRoomSensor]:  # overridden in main
    raise RuntimeError("Simulated sensor dependency not configured")


def _result_dict(result: ExecuteResult) -> dict[str, Any]:
    out = asdict(result)
    out["state"] = result.state.as_payload() if result.state else None
    return out


@router.get("/live")
async def get_live(poller: SensorPoller = Depends(get_poller)):
    rooms = {}
    for room, st in poller.live.rooms.items():
        rooms[room] = {
            "last_snapshot": st.last_snapshot,
            "last_ok_utc": st.last_ok_utc.isoformat() if st.last_ok_utc else None,
            "last_error": st.last_error,
            "ticks": st.ticks,
            "failures": st.failures,
        }
    return {
        "app": settings.app_name,
        "mode": settings.mode,
        "now_local": now_local().isoformat(),
        "rooms": rooms,
    }


# --- Rules ---
@router.get("/rules")
async def list_rules(manager: RuleManager = Depends(get_manager)):
    return {"rules": [h.to_dict() for h in manager.rules()]}


@router.post("/rules")
async def create_rule(
    req: RuleCreateRequest,
    manager: RuleManager = Depends(get_manager),
    repo: SQLiteRepository = Depends(get_repo),
):
    try:
        handle = manager.register(req.text, rule_id=req.id)
    except ParseError as e:
        logger.info("Rejected rule %r: %s", req.text, e)
        raise HTTPException(status_code=400, detail={"error": type(e).__name__, "message": str(e)})

    await repo.upsert(handle.rule_id, RuleSpec(id=handle.rule_id, text=handle.text, active=True))
    return {"ok": True, "rule": handle.to_dict()}


@router.delete("/rules/{rule_id}")
async def delete_rule(
    rule_id: str,
    manager: RuleManager = Depends(get_manager),
    repo: SQLiteRepository = Depends(get_repo),
):
    try:
        handle = manager.get_rule(rule_id)
    except RuleNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))

    manager.remove_rule(handle)
    await repo.upsert(rule_id, RuleSpec(id=rule_id, text=handle.text, active=False))
    return {"ok": True, "id": rule_id}


@router.post("/rules/{rule_id}/execute")
async def execute_rule(
    rule_id: str,
    req: ExecuteRequest,
    manager: RuleManager = Depends(get_manager),
):
    try:
        result = await manager.execute_rule(rule_id, force=req.force)
    except RuleNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DeviceNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ExternalCallError as e:
        raise HTTPException(status_code=502, detail=e.to_dict())
    return {"ok": True, "result": _result_dict(result)}


# --- Sensor data ---
@router.post("/sensors")
async def submit_snapshot(req: SensorSnapshotIn, manager: RuleManager = Depends(get_manager)):
    outcomes = await manager.process_sensor_data(req.model_dump(exclude_none=True))
    return {
        "ok": all(o.ok for o in outcomes),
        "outcomes": [
            {
                "rule_id": o.rule_id,
                "condition": o.condition,
                "skipped": o.skipped,
                "result": _result_dict(o.result) if o.result else None,
                "error": o.error,
                "detail": o.extra or None,
            }
            for o in outcomes
        ],
    }


@router.get("/events")
async def list_events(manager: RuleManager = Depends(get_manager)):
    return {"events": [e.to_dict() for e in manager.events()]}


@router.get("/devices")
async def list_devices(manager: RuleManager = Depends(get_manager)):
    return {
        "devices": {
            device_id: {"state": rec.state.as_payload(), "ts_utc": rec.ts_utc.isoformat()}
            for device_id, rec in manager.action_registry.records().items()
        }
    }


# --- Simulation endpoints ---
@router.get("/sim/sensors")
async def sim_status(sensors: dict[str, SimulatedRoomSensor] = Depends(get_sim_sensors)):
    return {"rooms": [s.status() for s in sensors.values()]}


@router.post("/sim/sensors/{room}")
async def sim_set_values(
    room: str,
    req: SimSensorRequest,
    sensors: dict[str, SimulatedRoomSensor] = Depends(get_sim_sensors),
):
    sensor = sensors.get(normalize(room))
    if sensor is None:
        raise HTTPException(status_code=404, detail=f"No simulated sensor for room '{room}'")
    sensor.set_values(temperature=req.temperature, humidity=req.humidity, motion=req.motion)
    return {"ok": True, **sensor.status()}
