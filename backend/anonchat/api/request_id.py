"""Request id lookup for error handlers."""

from __future__ import annotations

from typing import Optional

from fastapi import Request

from anonchat.obs import logging as obs_logging
from anonchat.obs.middleware import REQUEST_ID_ATTR


def get_request_id(request: Optional[Request] = None, default: str = "unknown") -> str:
    if request is not None:
        rid = getattr(request.state, REQUEST_ID_ATTR, None)
        if rid:
            return str(rid)
    return obs_logging.current_request_id() or default
