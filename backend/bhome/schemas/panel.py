"""Pydantic schemas for the panel API."""

from datetime import datetime

from pydantic import BaseModel, Field


class ZoneOut(BaseModel):
    slot: int
    name: str
    enabled: bool


class ScenarioOut(BaseModel):
    slot: int
    name: str
    enabled: bool
    zone_mask: int
    zones: list[int]
    is_custom: bool


class UserOut(BaseModel):
    slot: int
    name: str
    enabled: bool
    is_joker: bool
    permission_mask: int
    permissions: str  # RX1 RX2 VERIFY CMD as BBBB
    permission_names: str


class FailureOut(BaseModel):
    kind: str
    command: str
    message: str
    step: int | None = None
    code: str | None = None


class OutcomeOut(BaseModel):
    command: str
    success: bool
    message: str
    status: str | None = None
    scenario: str | None = None
    zones: str | None = None
    failure: FailureOut | None = None
    finished_at: datetime


class PanelSummaryOut(BaseModel):
    phone_number: str
    phone_masked: str
    firmware_version: str | None = None
    is_main: bool
    main_permissions: str
    last_status: str | None = None
    last_scenario: str | None = None
    last_zones: str | None = None
    last_check: datetime | None = None
    configured: bool
    busy: bool
    pending_command: str | None = None
    last_outcome: OutcomeOut | None = None


class StepOut(BaseModel):
    number: int
    name: str
    status: str
    message: str


class ConfigProgressOut(BaseModel):
    state: str
    running: bool
    percent_complete: int
    steps: list[StepOut]
    log: list[str]
    failure: FailureOut | None = None


class SmsLogOut(BaseModel):
    id: int
    direction: str
    peer: str
    text: str
    status: str
    message_id: str | None = None
    error: str | None = None
    timestamp: datetime


class AcceptedResponse(BaseModel):
    accepted: bool
    command: str | None = None
    message: str = ""


# ---- requests ----

class ArmCustomRequest(BaseModel):
    zones: list[int] = Field(min_length=1)


class CustomScenarioCreate(BaseModel):
    name: str = Field(min_length=1, max_length=32)
    zones: list[int] = Field(min_length=1)


class PermissionUpdate(BaseModel):
    rx1: bool = False
    rx2: bool = False
    verify: bool = False
    cmd_on_off: bool = False


class PhoneUpdate(BaseModel):
    phone_number: str
