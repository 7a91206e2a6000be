"""Document viewer: access policy, renderer selection, protections and fallback."""

from .document import Clipboard, InteractionEvent, ViewerDocument
from .fallback import (
    AsyncioScheduler,
    ManualScheduler,
    SlideViewerSession,
    ViewerSessionRegistry,
    ViewerState,
)
from .overlay import ProtectionOverlay
from .policy import CapabilitySet, FileCategory, describe_policy, parse_category, resolve_policy
from .renderer import RendererKind, ViewRequest, ViewTarget, build_view_target, select_renderer

__all__ = [
    "AsyncioScheduler",
    "CapabilitySet",
    "Clipboard",
    "FileCategory",
    "InteractionEvent",
    "ManualScheduler",
    "ProtectionOverlay",
    "RendererKind",
    "SlideViewerSession",
    "ViewRequest",
    "ViewTarget",
    "ViewerDocument",
    "ViewerSessionRegistry",
    "ViewerState",
    "build_view_target",
    "describe_policy",
    "parse_category",
    "resolve_policy",
    "select_renderer",
]
