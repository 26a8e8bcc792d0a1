"""Command-line launcher for the BHome SMS link.

Usage:
    bhome-link serve        Start the API server
    bhome-link ports        List serial ports
    bhome-link status       Show stored panel state and configuration
    bhome-link check-modem  Open the modem and put it in SMS text mode
"""

import argparse
import sys


def heading(msg: str) -> None:
    print(f"\n{'=' * 60}")
    print(f"  {msg}")
    print(f"{'=' * 60}\n")


def step(msg: str) -> None:
    print(f"  -> {msg}")


def ok(msg: str) -> None:
    print(f"  [OK] {msg}")


def warn(msg: str) -> None:
    print(f"  [!!] {msg}")


def fail(msg: str) -> None:
    print(f"  [FAIL] {msg}", file=sys.stderr)


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    from .config import settings

    host = args.host or settings.host
    port = args.port or settings.port
    heading("Starting BHome SMS link")
    step(f"Server at http://{host}:{port}")
    step("Press Ctrl+C to stop\n")
    uvicorn.run("bhome.main:app", host=host, port=port, log_level="info")
    return 0


def cmd_ports(_args: argparse.Namespace) -> int:
    from .protocol.modem import list_serial_ports

    heading("Serial ports")
    ports = list_serial_ports()
    if not ports:
        warn("No serial ports found")
        return 1
    for p in ports:
        step(p)
    return 0


def cmd_status(_args: argparse.Namespace) -> int:
    from .config import settings
    from .models.database import SessionLocal, init_database
    from .protocol import phone
    from .protocol.commands import permission_names
    from .protocol.errors import RecordStoreError
    from .services.record_store import SqlRecordStore

    heading("Panel status")
    init_database()
    store = SqlRecordStore(SessionLocal, sms_log_limit=settings.sms_log_limit)
    try:
        summary = store.summary()
        zones = store.zones()
        scenarios = store.scenarios()
        users = store.users()
    except RecordStoreError as e:
        fail(str(e))
        return 1

    number = summary.phone_number or settings.panel_phone
    if number:
        ok(f"Panel number: {phone.mask(number)}")
    else:
        warn("Panel number: not set")
    step(f"Database: {settings.db_path}")
    step(f"Modem: {settings.serial_port} @ {settings.baud_rate}")

    if summary.configured:
        ok(f"Configured (firmware {summary.firmware_version or '?'}, "
           f"{'main' if summary.is_main else 'secondary'} account: "
           f"{permission_names(summary.main_permissions) or 'no permissions'})")
    else:
        warn("Configuration not downloaded yet")

    step(f"Zones: {sum(z.enabled for z in zones)}/{len(zones)} enabled")
    step(f"Scenarios: {len(scenarios)} ({sum(s.is_custom for s in scenarios)} custom)")
    step(f"Users: {len(users)}")
    if summary.last_status:
        scenario = f" ({summary.last_scenario})" if summary.last_scenario else ""
        step(f"Last status: {summary.last_status}{scenario} at {summary.last_check}")
    return 0


def cmd_check_modem(_args: argparse.Namespace) -> int:
    from .config import settings
    from .protocol.errors import TransportError
    from .protocol.modem import GsmModem

    heading("Modem check")
    modem = GsmModem(
        port=settings.serial_port,
        destination=lambda: settings.panel_phone,
        baud_rate=settings.baud_rate,
        timeout=settings.serial_timeout,
        send_timeout=settings.sms_send_timeout_sec,
    )
    try:
        with modem:
            ok(f"{settings.serial_port} ready in SMS text mode")
            good, reply = modem.command("AT")
            if not good:
                warn(f"Modem stopped answering: {reply}")
                return 1
    except TransportError as e:
        fail(str(e))
        return 1
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(
        prog="bhome-link",
        description="BHome alarm panel SMS link",
    )
    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Start the API server")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    sub.add_parser("ports", help="List serial ports")
    sub.add_parser("status", help="Show stored panel state")
    sub.add_parser("check-modem", help="Open the modem and initialise SMS text mode")

    args = parser.parse_args()

    commands = {
        "serve": cmd_serve,
        "ports": cmd_ports,
        "status": cmd_status,
        "check-modem": cmd_check_modem,
    }
    if args.command not in commands:
        parser.print_help()
        return 1
    return commands[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
