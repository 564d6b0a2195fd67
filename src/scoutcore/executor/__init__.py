"""Strategy executor and the extraction strategies it chains."""

from scoutcore.executor.executor import StrategyExecutor, apply_transforms
from scoutcore.executor.html import select_fields, visible_text
from scoutcore.executor.strategies import (
    AiDomStrategy,
    BrowserDomStrategy,
    DirectApiStrategy,
    ExtractionStrategy,
    ProxyStrategy,
    StrategyHit,
    StrategyRequest,
    resolve_path,
)

__all__ = [
    "StrategyExecutor",
    "apply_transforms",
    "select_fields",
    "visible_text",
    "AiDomStrategy",
    "BrowserDomStrategy",
    "DirectApiStrategy",
    "ExtractionStrategy",
    "ProxyStrategy",
    "StrategyHit",
    "StrategyRequest",
    "resolve_path",
]
