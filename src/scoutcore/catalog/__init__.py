"""Source catalog: ranked extraction targets per query category."""

from scoutcore.catalog.catalog import SourceCatalog, target_from_record
from scoutcore.catalog.templates import build_context, render
from scoutcore.catalog.transforms import TRANSFORMS

__all__ = ["SourceCatalog", "target_from_record", "build_context", "render", "TRANSFORMS"]
