"""Browser bridge session and the scripts it injects."""

from scoutcore.bridge.scripts import (
    EXTRACTION_ERROR,
    EXTRACTION_RESULT,
    READY_STATE,
    VISIBLE_TEXT,
    build_extraction_script,
    build_ready_probe,
    build_visible_text_script,
)
from scoutcore.bridge.session import BridgeSession

__all__ = [
    "BridgeSession",
    "EXTRACTION_ERROR",
    "EXTRACTION_RESULT",
    "READY_STATE",
    "VISIBLE_TEXT",
    "build_extraction_script",
    "build_ready_probe",
    "build_visible_text_script",
]
