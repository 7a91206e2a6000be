"""Reference-counted protection overlay for protected documents."""

from __future__ import annotations

import contextlib
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Tuple

from ..services.events import emit_viewer_event
from .document import InteractionEvent, Listener, Node, ViewerDocument
from .policy import CapabilitySet

LOGGER = logging.getLogger(__name__)

STYLE_ELEMENT_ID = "protected-content-style"
WATERMARK_ELEMENT_ID = "protected-content-watermark"

BLOCKED_EVENTS: Tuple[str, ...] = ("contextmenu", "paste", "dragstart", "drag", "dragend", "selectstart")
CLIPBOARD_EVENTS: Tuple[str, ...] = ("copy", "cut")

PROTECTION_STYLESHEET = """
* {
  -webkit-user-select: none !important;
  -moz-user-select: none !important;
  -ms-user-select: none !important;
  user-select: none !important;
  -webkit-touch-callout: none !important;
  -webkit-user-drag: none !important;
  user-drag: none !important;
}
img {
  -webkit-user-drag: none !important;
  user-drag: none !important;
  pointer-events: none !important;
}
iframe, object, embed, .viewer-embed {
  pointer-events: auto !important;
  overflow: auto !important;
  -webkit-overflow-scrolling: touch !important;
  touch-action: pan-x pan-y pinch-zoom !important;
}
::selection { background: transparent !important; }
::-moz-selection { background: transparent !important; }
""".strip()

WATERMARK_STYLE = (
    "position: fixed; top: 0; left: 0; width: 100%; height: 100%; "
    "pointer-events: none; z-index: 2147483647; user-select: none; "
    "background: repeating-linear-gradient(45deg, transparent, transparent 100px, "
    "rgba(255, 0, 0, 0.03) 100px, rgba(255, 0, 0, 0.03) 200px);"
)


@dataclass(frozen=True)
class KeyCombo:
    """A blocked key. ``modifier`` means Ctrl or Cmd; ``shift=None`` accepts either."""

    key: str
    modifier: bool = False
    shift: Optional[bool] = None

    def matches(self, event: InteractionEvent) -> bool:
        if (event.key or "").lower() != self.key:
            return False
        if self.modifier and not (event.ctrl_key or event.meta_key):
            return False
        if self.shift is not None and event.shift_key != self.shift:
            return False
        return True

    def to_dict(self) -> dict:
        return {"key": self.key, "modifier": self.modifier, "shift": self.shift}


BLOCKED_KEY_COMBOS: Tuple[KeyCombo, ...] = (
    KeyCombo("f12"),
    KeyCombo("printscreen"),
    KeyCombo("f5"),
    # devtools
    KeyCombo("i", modifier=True, shift=True),
    KeyCombo("j", modifier=True, shift=True),
    KeyCombo("c", modifier=True, shift=True),
    KeyCombo("k", modifier=True, shift=True),
    # view source, save, print, refresh (with or without shift)
    KeyCombo("u", modifier=True),
    KeyCombo("s", modifier=True),
    KeyCombo("p", modifier=True),
    KeyCombo("r", modifier=True),
    # select all and clipboard
    KeyCombo("a", modifier=True),
    KeyCombo("c", modifier=True),
    KeyCombo("x", modifier=True),
    KeyCombo("v", modifier=True),
)


def is_blocked_key(event: InteractionEvent) -> bool:
    return any(combo.matches(event) for combo in BLOCKED_KEY_COMBOS)


def _block(event: InteractionEvent) -> None:
    event.prevent_default()
    event.stop_propagation()


def _block_clipboard(event: InteractionEvent) -> None:
    _block(event)
    if event.clipboard is not None:
        event.clipboard.set_data("text/plain", "")


def _block_right_button(event: InteractionEvent) -> None:
    if event.button == 2:
        _block(event)


def _block_keys(event: InteractionEvent) -> None:
    if is_blocked_key(event):
        _block(event)


def _noop() -> None:
    return None


class ProtectionOverlay:
    """Install and remove interaction blocks on a :class:`ViewerDocument`.

    One overlay exists per document. Activations are reference counted:
    activating again with the same capabilities only increments the count,
    activating with different capabilities replaces the installation. Every
    ``deactivate`` handle is idempotent and handles from a replaced or reset
    installation do nothing.
    """

    def __init__(self, document: ViewerDocument) -> None:
        self._document = document
        self._lock = threading.Lock()
        self._listeners: List[Listener] = []
        self._node_ids: List[str] = []
        self._capabilities: Optional[CapabilitySet] = None
        self._count = 0
        self._generation = 0

    @property
    def document(self) -> ViewerDocument:
        return self._document

    @property
    def capabilities(self) -> Optional[CapabilitySet]:
        return self._capabilities

    @property
    def ref_count(self) -> int:
        return self._count

    @property
    def is_active(self) -> bool:
        return self._capabilities is not None

    def activate(self, capabilities: CapabilitySet) -> Callable[[], None]:
        """Apply the protections *capabilities* call for and return ``deactivate``."""

        if not capabilities.block_copy:
            return _noop

        with self._lock:
            if self._capabilities == capabilities:
                self._count += 1
            else:
                if self._capabilities is not None:
                    self._uninstall(reason="replaced")
                self._install(capabilities)
                self._count = 1
            generation = self._generation

        released = False

        def deactivate() -> None:
            nonlocal released
            with self._lock:
                if released:
                    return
                released = True
                if generation != self._generation or self._capabilities is None:
                    return
                self._count -= 1
                if self._count <= 0:
                    self._uninstall(reason="released")

        return deactivate

    @contextlib.contextmanager
    def session(self, capabilities: CapabilitySet) -> Iterator["ProtectionOverlay"]:
        deactivate = self.activate(capabilities)
        try:
            yield self
        finally:
            deactivate()

    def reset(self) -> None:
        """Remove every protection regardless of outstanding activations."""

        with self._lock:
            if self._capabilities is not None:
                self._uninstall(reason="reset")

    # ------------------------------------------------------------------
    def _listen(self, target, event_type: str, handler, *, action: str, capture: bool = True) -> None:
        listener = self._document.add_event_listener(
            target, event_type, handler, action=action, capture=capture
        )
        self._listeners.append(listener)

    def _log_hidden(self, _event: InteractionEvent) -> None:
        if self._document.hidden:
            LOGGER.warning("Page visibility changed while protected content was on screen")

    def _install(self, capabilities: CapabilitySet) -> None:
        document = self._document
        for event_type in BLOCKED_EVENTS:
            self._listen("document", event_type, _block, action="block")
        for event_type in CLIPBOARD_EVENTS:
            self._listen("document", event_type, _block_clipboard, action="clear-clipboard")
        self._listen("document", "mousedown", _block_right_button, action="block-right-button")
        self._listen("document", "keydown", _block_keys, action="block-keys")

        document.append_head(Node("style", STYLE_ELEMENT_ID, text=PROTECTION_STYLESHEET))
        self._node_ids.append(STYLE_ELEMENT_ID)

        if capabilities.block_screenshot_visual:
            document.append_body(
                Node(
                    "div",
                    WATERMARK_ELEMENT_ID,
                    attributes={"style": WATERMARK_STYLE, "aria-hidden": "true"},
                )
            )
            self._node_ids.append(WATERMARK_ELEMENT_ID)
            self._listen(
                "document", "visibilitychange", self._log_hidden, action="log-hidden", capture=False
            )

        self._capabilities = capabilities
        self._generation += 1
        emit_viewer_event(
            "overlay_installed",
            payload={
                "listeners": len(self._listeners),
                "watermark": capabilities.block_screenshot_visual,
            },
            level=logging.DEBUG,
        )

    def _uninstall(self, *, reason: str) -> None:
        for listener in self._listeners:
            self._document.remove_event_listener(listener)
        for element_id in self._node_ids:
            self._document.remove_element(element_id)
        removed = len(self._listeners)
        self._listeners = []
        self._node_ids = []
        self._capabilities = None
        self._count = 0
        self._generation += 1
        emit_viewer_event(
            "overlay_removed",
            payload={"listeners": removed, "reason": reason},
            level=logging.DEBUG,
        )


__all__ = [
    "BLOCKED_EVENTS",
    "BLOCKED_KEY_COMBOS",
    "CLIPBOARD_EVENTS",
    "KeyCombo",
    "PROTECTION_STYLESHEET",
    "ProtectionOverlay",
    "STYLE_ELEMENT_ID",
    "WATERMARK_ELEMENT_ID",
    "WATERMARK_STYLE",
    "is_blocked_key",
]
