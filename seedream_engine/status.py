"""Health and configuration report."""

from __future__ import annotations

import os
import platform
import time
from typing import Any

from . import __version__
from .config import get_api_key
from .sync.base import GalleryStore
from .sync.gallery import gallery_identity

_PROCESS_STARTED = time.monotonic()
COMMANDS = ("generate", "edit", "blend", "variations", "submit", "result", "status")


def status_report(store: GalleryStore | None, verbose: bool = False) -> dict[str, Any]:
    api_key_configured = get_api_key() is not None
    store_configured = bool(store is not None and store.is_configured())
    report: dict[str, Any] = {
        "status": "healthy" if api_key_configured else "degraded",
        "api_key_configured": api_key_configured,
        "store_configured": store_configured,
        "version": __version__,
        "python_version": platform.python_version(),
        "uptime_seconds": int(time.monotonic() - _PROCESS_STARTED),
        "commands": list(COMMANDS),
    }
    if store_configured:
        report["gallery_user_id"] = gallery_identity()[0]
    if verbose:
        report["platform"] = f"{platform.system()} {platform.release()}"
        report["pid"] = os.getpid()
    return report
