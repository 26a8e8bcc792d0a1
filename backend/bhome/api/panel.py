"""GET  /api/panel - Stored panel state, pending command, last outcome.
   PUT  /api/panel/phone - Set the panel phone number.
   POST /api/panel/status | arm/{scenario} | arm-custom | arm-custom-scenario/{slot} | disarm
   GET  /api/config/progress, POST /api/config/start | /api/config/cancel

Commands return 202 as soon as the SMS is handed to the modem; the
panel's reply shows up later in GET /api/panel.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from ..protocol import phone
from ..protocol.commands import permissions_to_string
from ..protocol.constants import ConfigState
from ..protocol.errors import Failure, FailureKind
from ..schemas.panel import (
    AcceptedResponse,
    ArmCustomRequest,
    ConfigProgressOut,
    FailureOut,
    OutcomeOut,
    PanelSummaryOut,
    PhoneUpdate,
    StepOut,
)
from ..services.engine import PanelLink
from .deps import get_link

logger = logging.getLogger(__name__)
router = APIRouter(tags=["panel"])


def failure_out(failure: Failure | None) -> FailureOut | None:
    if failure is None:
        return None
    return FailureOut(
        kind=failure.kind.value,
        command=failure.command,
        message=failure.message,
        step=failure.step,
        code=failure.code,
    )


def _accepted(link: PanelLink, sent: bool) -> AcceptedResponse:
    """Map a rejected send to the matching HTTP error."""
    if sent:
        return AcceptedResponse(accepted=True, command=link.panel.in_flight, message="Sent")
    outcome = link.panel.last_outcome
    failure = outcome.failure if outcome else None
    if failure is not None and failure.kind is FailureKind.BUSY:
        raise HTTPException(status_code=409, detail=failure.message)
    raise HTTPException(
        status_code=503, detail=failure.message if failure else "Command not sent",
    )


@router.get("/panel", response_model=PanelSummaryOut)
async def get_panel(link: PanelLink = Depends(get_link)):
    summary = link.store.summary()
    number = link.panel_number()
    pending = link.correlator.pending
    last = link.panel.last_outcome
    return PanelSummaryOut(
        phone_number=number,
        phone_masked=phone.mask(number),
        firmware_version=summary.firmware_version,
        is_main=summary.is_main,
        main_permissions=permissions_to_string(summary.main_permissions),
        last_status=summary.last_status,
        last_scenario=summary.last_scenario,
        last_zones=summary.last_zones,
        last_check=summary.last_check,
        configured=summary.configured,
        busy=link.correlator.busy,
        pending_command=pending.wire if pending else None,
        last_outcome=OutcomeOut(
            command=last.command,
            success=last.success,
            message=last.message,
            status=last.status,
            scenario=last.scenario,
            zones=last.zones,
            failure=failure_out(last.failure),
            finished_at=last.finished_at,
        ) if last else None,
    )


@router.put("/panel/phone")
async def set_phone(body: PhoneUpdate, link: PanelLink = Depends(get_link)):
    if not phone.is_valid(body.phone_number):
        raise HTTPException(status_code=400, detail=f"Invalid phone number: {body.phone_number}")
    link.store.set_phone_number(body.phone_number.strip())
    logger.info("Panel number set to %s", phone.mask(body.phone_number))
    return {"phone_number": body.phone_number.strip()}


@router.post("/panel/status", status_code=202, response_model=AcceptedResponse)
async def check_status(link: PanelLink = Depends(get_link)):
    return _accepted(link, link.panel.check_status())


@router.post("/panel/arm/{scenario}", status_code=202, response_model=AcceptedResponse)
async def arm_scenario(scenario: int, link: PanelLink = Depends(get_link)):
    try:
        sent = link.panel.arm_scenario(scenario)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _accepted(link, sent)


@router.post("/panel/arm-custom", status_code=202, response_model=AcceptedResponse)
async def arm_custom(body: ArmCustomRequest, link: PanelLink = Depends(get_link)):
    try:
        sent = link.panel.arm_custom(body.zones)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _accepted(link, sent)


@router.post("/panel/arm-custom-scenario/{slot}", status_code=202, response_model=AcceptedResponse)
async def arm_custom_scenario(slot: int, link: PanelLink = Depends(get_link)):
    try:
        sent = link.panel.arm_custom_scenario(slot)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _accepted(link, sent)


@router.post("/panel/disarm", status_code=202, response_model=AcceptedResponse)
async def disarm(link: PanelLink = Depends(get_link)):
    return _accepted(link, link.panel.disarm())


# ---------------------------------------------------------------------------
# Configuration handshake
# ---------------------------------------------------------------------------

def _progress(link: PanelLink) -> ConfigProgressOut:
    session = link.session
    return ConfigProgressOut(
        state=session.state.name,
        running=session.running,
        percent_complete=session.percent_complete,
        steps=[
            StepOut(number=s.number, name=s.name, status=s.status.value, message=s.message)
            for s in session.steps
        ],
        log=list(session.log),
        failure=failure_out(session.failure),
    )


@router.get("/config/progress", response_model=ConfigProgressOut)
async def config_progress(link: PanelLink = Depends(get_link)):
    return _progress(link)


@router.post("/config/start", status_code=202, response_model=ConfigProgressOut)
async def config_start(link: PanelLink = Depends(get_link)):
    if link.session.running:
        raise HTTPException(status_code=409, detail="Configuration already running")
    started = link.session.start()
    failure = link.session.failure
    if failure is not None and (not started or link.session.state is ConfigState.ERROR):
        if failure.kind is FailureKind.BUSY:
            status = 409
        elif not started:
            status = 400  # no panel number
        else:
            status = 503
        raise HTTPException(status_code=status, detail=failure.message)
    return _progress(link)


@router.post("/config/cancel", response_model=ConfigProgressOut)
async def config_cancel(link: PanelLink = Depends(get_link)):
    link.session.cancel()
    return _progress(link)
