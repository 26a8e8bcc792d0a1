"""Record store: durable home for everything decoded from the panel.

The engine only depends on the RecordStore interface. SqlRecordStore is
the SQLAlchemy implementation used by the application; every write runs
in its own session and commits before returning, so a configuration step
only advances once its records are stored.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.alarm_config import ALARM_CONFIG_ID, AlarmConfigModel
from ..models.panel_records import ScenarioModel, UserModel, ZoneModel
from ..models.sms_log import SmsDirection, SmsLogModel, SmsStatus
from ..protocol.constants import CUSTOM_SCENARIO_BASE, JOKER_SLOT
from ..protocol.errors import RecordStoreError
from ..protocol.responses import ScenarioRecord, UserRecord, ZoneRecord

logger = logging.getLogger(__name__)


@dataclass
class PanelSummary:
    phone_number: str = ""
    firmware_version: Optional[str] = None
    is_main: bool = False
    main_permissions: int = 0
    last_status: Optional[str] = None
    last_scenario: Optional[str] = None
    last_zones: Optional[str] = None
    last_check: Optional[datetime] = None
    configured: bool = False


@dataclass
class SmsLogEntry:
    id: int
    direction: str
    peer: str
    text: str
    status: str
    message_id: Optional[str]
    error: Optional[str]
    timestamp: datetime


class RecordStore:
    """Interface the engine writes through."""

    def put_zones(self, zones: list[ZoneRecord]) -> None:
        raise NotImplementedError

    def put_scenarios(self, scenarios: list[ScenarioRecord]) -> None:
        raise NotImplementedError

    def put_users(self, users: list[UserRecord]) -> None:
        raise NotImplementedError

    def put_status(self, status: Optional[str], scenario: Optional[str] = None,
                   zones: Optional[str] = None) -> None:
        raise NotImplementedError

    def mark_configured(self, configured: bool) -> None:
        raise NotImplementedError

    def put_panel_info(self, version: Optional[str], is_main: bool, permissions: int) -> None:
        raise NotImplementedError


def _zone(row: ZoneModel) -> ZoneRecord:
    return ZoneRecord(slot=row.slot, name=row.name, enabled=bool(row.enabled))


def _scenario(row: ScenarioModel) -> ScenarioRecord:
    return ScenarioRecord(
        slot=row.slot, name=row.name, enabled=bool(row.enabled),
        zone_mask=row.zone_mask or 0, is_custom=bool(row.is_custom),
    )


def _user(row: UserModel) -> UserRecord:
    return UserRecord(
        slot=row.slot, name=row.name, enabled=bool(row.enabled),
        permission_mask=row.permission_mask or 0, is_joker=bool(row.is_joker),
    )


def _sms(row: SmsLogModel) -> SmsLogEntry:
    return SmsLogEntry(
        id=row.id, direction=row.direction, peer=row.peer, text=row.text,
        status=row.status, message_id=row.message_id, error=row.error,
        timestamp=row.timestamp,
    )


class SqlRecordStore(RecordStore):
    """RecordStore on SQLAlchemy; storage errors become RecordStoreError."""

    def __init__(self, session_factory: Callable[[], Session], sms_log_limit: int = 500):
        self._session_factory = session_factory
        self.sms_log_limit = sms_log_limit

    def _write(self, what: str, fn: Callable[[Session], object]):
        db = self._session_factory()
        try:
            result = fn(db)
            db.commit()
            return result
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to store %s: %s", what, e)
            raise RecordStoreError(f"Failed to store {what}: {e}") from e
        finally:
            db.close()

    def _read(self, fn: Callable[[Session], object]):
        db = self._session_factory()
        try:
            return fn(db)
        except SQLAlchemyError as e:
            raise RecordStoreError(f"Failed to read records: {e}") from e
        finally:
            db.close()

    @staticmethod
    def _config_row(db: Session) -> AlarmConfigModel:
        row = db.get(AlarmConfigModel, ALARM_CONFIG_ID)
        if row is None:
            row = AlarmConfigModel(id=ALARM_CONFIG_ID, phone_number="")
            db.add(row)
        return row

    # ---- engine writes ----

    def put_zones(self, zones: list[ZoneRecord]) -> None:
        """Replace the whole zone table with the zones of one CONF1 block."""
        def fn(db: Session):
            db.execute(delete(ZoneModel))
            for z in zones:
                db.merge(ZoneModel(slot=z.slot, name=z.name, enabled=int(z.enabled)))
        self._write("zones", fn)
        logger.info("Stored %d zones", len(zones))

    def put_scenarios(self, scenarios: list[ScenarioRecord]) -> None:
        """Replace predefined scenarios by slot. Custom slots are never touched."""
        def fn(db: Session):
            for s in scenarios:
                if s.slot > CUSTOM_SCENARIO_BASE or s.is_custom:
                    logger.warning("Refusing to overwrite custom scenario slot %d", s.slot)
                    continue
                db.merge(ScenarioModel(
                    slot=s.slot, name=s.name, enabled=int(s.enabled),
                    zone_mask=s.zone_mask, is_custom=0,
                ))
        self._write("scenarios", fn)
        logger.info("Stored %d scenarios", len(scenarios))

    def put_users(self, users: list[UserRecord]) -> None:
        """Replace users by slot, keeping locally edited permission masks."""
        def fn(db: Session):
            for u in users:
                existing = db.get(UserModel, u.slot)
                mask = u.permission_mask or (existing.permission_mask if existing else 0)
                db.merge(UserModel(
                    slot=u.slot, name=u.name, enabled=int(u.enabled),
                    permission_mask=mask, is_joker=int(u.is_joker),
                ))
        self._write("users", fn)
        logger.info("Stored %d users", len(users))

    def put_status(self, status: Optional[str], scenario: Optional[str] = None,
                   zones: Optional[str] = None) -> None:
        def fn(db: Session):
            row = self._config_row(db)
            row.last_status = status
            row.last_scenario = scenario
            row.last_zones = zones
            row.last_check = datetime.now(timezone.utc)
        self._write("status", fn)

    def mark_configured(self, configured: bool) -> None:
        def fn(db: Session):
            self._config_row(db).configured = int(configured)
        self._write("configured flag", fn)

    def put_panel_info(self, version: Optional[str], is_main: bool, permissions: int) -> None:
        def fn(db: Session):
            row = self._config_row(db)
            row.firmware_version = version
            row.is_main = int(is_main)
            row.main_permissions = permissions
        self._write("panel info", fn)

    # ---- alarm config ----

    def summary(self) -> PanelSummary:
        def fn(db: Session):
            row = db.get(AlarmConfigModel, ALARM_CONFIG_ID)
            if row is None:
                return PanelSummary()
            return PanelSummary(
                phone_number=row.phone_number or "",
                firmware_version=row.firmware_version,
                is_main=bool(row.is_main),
                main_permissions=row.main_permissions or 0,
                last_status=row.last_status,
                last_scenario=row.last_scenario,
                last_zones=row.last_zones,
                last_check=row.last_check,
                configured=bool(row.configured),
            )
        return self._read(fn)

    def phone_number(self) -> str:
        return self.summary().phone_number

    def set_phone_number(self, number: str) -> None:
        def fn(db: Session):
            self._config_row(db).phone_number = number
        self._write("phone number", fn)

    # ---- records ----

    def zones(self) -> list[ZoneRecord]:
        return self._read(lambda db: [
            _zone(r) for r in db.scalars(select(ZoneModel).order_by(ZoneModel.slot))
        ])

    def scenarios(self, include_custom: bool = True) -> list[ScenarioRecord]:
        def fn(db: Session):
            stmt = select(ScenarioModel).order_by(ScenarioModel.slot)
            if not include_custom:
                stmt = stmt.where(ScenarioModel.is_custom == 0)
            return [_scenario(r) for r in db.scalars(stmt)]
        return self._read(fn)

    def scenario(self, slot: int) -> Optional[ScenarioRecord]:
        def fn(db: Session):
            row = db.get(ScenarioModel, slot)
            return _scenario(row) if row else None
        return self._read(fn)

    def users(self) -> list[UserRecord]:
        return self._read(lambda db: [
            _user(r) for r in db.scalars(select(UserModel).order_by(UserModel.slot))
        ])

    def user(self, slot: int) -> Optional[UserRecord]:
        def fn(db: Session):
            row = db.get(UserModel, slot)
            return _user(row) if row else None
        return self._read(fn)

    def set_user_permissions(self, slot: int, permission_mask: int) -> Optional[UserRecord]:
        def fn(db: Session):
            row = db.get(UserModel, slot)
            if row is None:
                return None
            row.permission_mask = permission_mask
            return _user(row)
        return self._write(f"permissions for user {slot}", fn)

    def joker(self) -> Optional[UserRecord]:
        return self.user(JOKER_SLOT)

    # ---- custom scenarios ----

    def add_custom_scenario(self, name: str, zone_mask: int) -> ScenarioRecord:
        def fn(db: Session):
            top = db.scalar(select(func.max(ScenarioModel.slot)).where(ScenarioModel.is_custom == 1))
            slot = max(top or 0, CUSTOM_SCENARIO_BASE) + 1
            row = ScenarioModel(slot=slot, name=name, enabled=1, zone_mask=zone_mask, is_custom=1)
            db.add(row)
            db.flush()
            return _scenario(row)
        record = self._write("custom scenario", fn)
        logger.info("Created custom scenario %d (%s)", record.slot, name)
        return record

    def delete_custom_scenario(self, slot: int) -> bool:
        def fn(db: Session):
            result = db.execute(
                delete(ScenarioModel).where(
                    ScenarioModel.slot == slot, ScenarioModel.is_custom == 1,
                )
            )
            return result.rowcount > 0
        return self._write("custom scenario", fn)

    # ---- SMS log ----

    def log_outgoing(self, peer: str, text: str, message_id: Optional[str] = None) -> int:
        def fn(db: Session):
            row = SmsLogModel(
                direction=SmsDirection.OUTGOING.value, peer=peer or "", text=text,
                status=SmsStatus.PENDING.value, message_id=message_id,
            )
            db.add(row)
            db.flush()
            self._trim_log(db)
            return row.id
        return self._write("SMS log", fn)

    def log_incoming(self, peer: str, text: str) -> int:
        def fn(db: Session):
            row = SmsLogModel(
                direction=SmsDirection.INCOMING.value, peer=peer or "", text=text,
                status=SmsStatus.RECEIVED.value,
            )
            db.add(row)
            db.flush()
            self._trim_log(db)
            return row.id
        return self._write("SMS log", fn)

    def update_sms_status(self, message_id: str, status: SmsStatus,
                          error: Optional[str] = None) -> bool:
        def fn(db: Session):
            row = db.scalar(
                select(SmsLogModel).where(SmsLogModel.message_id == message_id)
                .order_by(SmsLogModel.id.desc())
            )
            if row is None:
                return False
            row.status = status.value
            row.error = error
            return True
        return self._write("SMS status", fn)

    def sms_log(self, limit: int = 100) -> list[SmsLogEntry]:
        return self._read(lambda db: [
            _sms(r) for r in db.scalars(
                select(SmsLogModel).order_by(SmsLogModel.id.desc()).limit(limit)
            )
        ])

    def clear_sms_log(self) -> int:
        return self._write("SMS log", lambda db: db.execute(delete(SmsLogModel)).rowcount)

    def _trim_log(self, db: Session) -> None:
        cutoff = db.scalar(
            select(SmsLogModel.id).order_by(SmsLogModel.id.desc())
            .offset(self.sms_log_limit).limit(1)
        )
        if cutoff is not None:
            db.execute(delete(SmsLogModel).where(SmsLogModel.id <= cutoff))
