"""Zones, scenarios, users and the SMS journal."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from ..protocol.commands import (
    build_permissions,
    permission_names,
    permissions_to_string,
    zones_to_mask,
)
from ..protocol.responses import ScenarioRecord, UserRecord
from ..schemas.panel import (
    AcceptedResponse,
    CustomScenarioCreate,
    PermissionUpdate,
    ScenarioOut,
    SmsLogOut,
    UserOut,
    ZoneOut,
)
from ..services.engine import PanelLink
from .deps import get_link

logger = logging.getLogger(__name__)
router = APIRouter(tags=["records"])


def scenario_out(s: ScenarioRecord) -> ScenarioOut:
    return ScenarioOut(
        slot=s.slot, name=s.name, enabled=s.enabled, zone_mask=s.zone_mask,
        zones=s.included_zones, is_custom=s.is_custom,
    )


def user_out(u: UserRecord) -> UserOut:
    return UserOut(
        slot=u.slot, name=u.name, enabled=u.enabled, is_joker=u.is_joker,
        permission_mask=u.permission_mask,
        permissions=permissions_to_string(u.permission_mask),
        permission_names=permission_names(u.permission_mask),
    )


@router.get("/zones", response_model=list[ZoneOut])
async def list_zones(link: PanelLink = Depends(get_link)):
    return [ZoneOut(slot=z.slot, name=z.name, enabled=z.enabled) for z in link.store.zones()]


@router.get("/scenarios", response_model=list[ScenarioOut])
async def list_scenarios(
    include_custom: bool = True, link: PanelLink = Depends(get_link),
):
    return [scenario_out(s) for s in link.store.scenarios(include_custom=include_custom)]


@router.post("/scenarios/custom", status_code=201, response_model=ScenarioOut)
async def create_custom_scenario(body: CustomScenarioCreate, link: PanelLink = Depends(get_link)):
    try:
        mask = zones_to_mask(body.zones)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return scenario_out(link.store.add_custom_scenario(body.name, mask))


@router.delete("/scenarios/custom/{slot}")
async def delete_custom_scenario(slot: int, link: PanelLink = Depends(get_link)):
    if not link.store.delete_custom_scenario(slot):
        raise HTTPException(status_code=404, detail=f"No custom scenario in slot {slot}")
    return {"deleted": slot}


@router.get("/users", response_model=list[UserOut])
async def list_users(link: PanelLink = Depends(get_link)):
    return [user_out(u) for u in link.store.users()]


@router.put("/users/{slot}/permissions", response_model=AcceptedResponse)
async def update_permissions(
    slot: int, body: PermissionUpdate, link: PanelLink = Depends(get_link),
):
    mask = build_permissions(body.rx1, body.rx2, body.verify, body.cmd_on_off)
    try:
        sent = link.panel.set_user_permissions(slot, mask)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if sent:
        return AcceptedResponse(accepted=True, command=link.panel.in_flight, message="Sent")
    if link.panel.dispatch_permission_updates:
        outcome = link.panel.last_outcome
        raise HTTPException(
            status_code=503,
            detail=outcome.message if outcome else "Command not sent",
        )
    return AcceptedResponse(accepted=True, message="Saved locally")


@router.get("/sms-log", response_model=list[SmsLogOut])
async def list_sms_log(
    limit: int = Query(100, ge=1, le=1000), link: PanelLink = Depends(get_link),
):
    return [SmsLogOut(**vars(entry)) for entry in link.store.sms_log(limit)]


@router.delete("/sms-log")
async def clear_sms_log(link: PanelLink = Depends(get_link)):
    return {"deleted": link.store.clear_sms_log()}
