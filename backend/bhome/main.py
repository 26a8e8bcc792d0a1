"""FastAPI application factory and lifespan for the BHome SMS link."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .models.database import init_database, SessionLocal
from .protocol import phone
from .protocol.errors import TransportError
from .protocol.modem import GsmModem
from .services.engine import PanelLink
from .services.record_store import SqlRecordStore
from .api.router import api_router

# Configure logging for our app (uvicorn only configures its own loggers)
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:     %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

LinkFactory = Callable[[asyncio.AbstractEventLoop], PanelLink]


def build_link(loop: asyncio.AbstractEventLoop) -> PanelLink:
    """Default wiring: SQLite record store and a serial GSM modem."""
    init_database()
    logger.info("Database: %s", settings.db_path)
    store = SqlRecordStore(SessionLocal, sms_log_limit=settings.sms_log_limit)

    link: Optional[PanelLink] = None

    def destination() -> str:
        return link.panel_number() if link else settings.panel_phone

    modem = GsmModem(
        port=settings.serial_port,
        destination=destination,
        baud_rate=settings.baud_rate,
        timeout=settings.serial_timeout,
        send_timeout=settings.sms_send_timeout_sec,
    )
    link = PanelLink(modem, store, settings, loop)
    return link


async def _bg_open(link: PanelLink) -> None:
    """Open the modem in the background so uvicorn starts immediately."""
    loop = asyncio.get_running_loop()
    try:
        await loop.run_in_executor(None, link.transport.open)
    except TransportError as e:
        logger.error("Modem not available: %s", e)
        return
    number = link.panel_number()
    if number:
        logger.info("Panel link ready (panel %s)", phone.mask(number))
    else:
        logger.warning("Panel link ready but no panel phone number is configured")


def create_app(link_factory: Optional[LinkFactory] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    factory = link_factory or build_link

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan: build the panel link and open the modem."""
        loop = asyncio.get_running_loop()
        link = factory(loop)
        app.state.link = link
        link.start()
        open_task = asyncio.create_task(_bg_open(link))

        yield

        logger.info("Shutting down...")
        open_task.cancel()
        await link.stop()
        await loop.run_in_executor(None, link.transport.close)
        app.state.link = None
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="BHome SMS Link",
        version="0.1.0",
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # API routes
    app.include_router(api_router)

    return app


# Application instance
app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)
