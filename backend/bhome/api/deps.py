"""Request-scoped access to the process-wide PanelLink."""

from fastapi import HTTPException, Request

from ..services.engine import PanelLink


def get_link(request: Request) -> PanelLink:
    link = getattr(request.app.state, "link", None)
    if link is None:
        raise HTTPException(status_code=503, detail="Panel link not started")
    return link
