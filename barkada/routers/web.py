# barkada/routers/web.py
"""Browser-facing redirect targets for the Spotify login."""

import json
import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from .. import oauth
from ..config import get_settings
from ..database import get_db
from ..errors import BarkadaError
from ..popup_bridge import AUTH_SUCCESS, AUTH_ERROR
from ..session_store import SessionStore, get_session_store, get_browser_session

logger = logging.getLogger(__name__)

router = APIRouter(tags=["web"])

DASHBOARD_URL = "/dashboard"
COMPLETE_PATH = "/callback/complete"

_PAGE = """<!DOCTYPE html>
<html>
<head><title>Spotify Authentication</title></head>
<body>
  <p>{headline}</p>
  <script>
    (function () {{
      var message = {message};
      var target = {target} || window.location.origin;
      if (window.opener) {{
        window.opener.postMessage(message, target);
        setTimeout(function () {{ window.close(); }}, 500);
      }} else {{
        window.location.href = {fallback};
      }}
    }})();
  </script>
</body>
</html>
"""


def _js(value) -> str:
    # JSON is valid JS; "</" is escaped so values cannot close the script tag
    return json.dumps(value).replace("</", "<\\/")


def _error_url(error: str) -> str:
    return "/?" + urlencode({"error": error})


def render_popup_page(message: dict, fallback_url: str) -> str:
    headline = (
        "Authentication successful! You can close this window."
        if message.get("type") == AUTH_SUCCESS
        else "Authentication failed. You can close this window."
    )
    return _PAGE.format(
        headline=headline,
        message=_js(message),
        target=_js(get_settings().popup_target_origin),
        fallback=_js(fallback_url),
    )


@router.get("/callback", response_class=HTMLResponse)
async def web_callback(
        code: Optional[str] = None,
        state: Optional[str] = None,
        error: Optional[str] = None,
):
    """
    Spotify redirect target. Inside a popup the page hands the code to the
    opener; opened as a full page it forwards to the server-side completion.
    """
    logger.info(
        "Web callback received: code=%s error=%s",
        "present" if code else "missing", error,
    )

    if error or not code:
        message = {"type": AUTH_ERROR, "error": error or "No authorization code received"}
        return HTMLResponse(render_popup_page(message, _error_url(message["error"])))

    message = {"type": AUTH_SUCCESS, "code": code, "state": state}
    params = {"code": code}
    if state is not None:
        params["state"] = state
    return HTMLResponse(render_popup_page(message, f"{COMPLETE_PATH}?{urlencode(params)}"))


@router.get(COMPLETE_PATH)
async def complete_web_callback(
        code: Optional[str] = None,
        state: Optional[str] = None,
        db: AsyncSession = Depends(get_db),
        store: SessionStore = Depends(get_session_store),
        sid: str = Depends(get_browser_session),
):
    """Finish a full-page login on the server and send the browser on."""
    try:
        await oauth.handle_callback(db, store, sid, code, state)
    except BarkadaError as exc:
        logger.warning("Full-page login failed: %s", exc.message)
        return RedirectResponse(_error_url(exc.message), status_code=302)
    return RedirectResponse(DASHBOARD_URL, status_code=302)
