"""In-process model of the global state a viewer page exposes to scripts.

The protection overlay installs listeners and nodes on a
:class:`ViewerDocument`; :mod:`coursedesk.viewer.pages` serializes the result
to HTML plus a listener manifest that ``protection.js`` replays in the browser.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Literal, Optional


ListenerTarget = Literal["document", "window"]

_LISTENER_IDS = itertools.count(1)


class Clipboard:
    """Clipboard payload attached to ``copy``/``cut`` events."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    def set_data(self, fmt: str, value: str) -> None:
        self._data[fmt] = value

    def get_data(self, fmt: str) -> Optional[str]:
        return self._data.get(fmt)


@dataclass
class InteractionEvent:
    type: str
    key: Optional[str] = None
    ctrl_key: bool = False
    meta_key: bool = False
    shift_key: bool = False
    alt_key: bool = False
    button: int = 0
    clipboard: Optional[Clipboard] = None
    default_prevented: bool = False
    propagation_stopped: bool = False

    def prevent_default(self) -> None:
        self.default_prevented = True

    def stop_propagation(self) -> None:
        self.propagation_stopped = True


@dataclass
class Listener:
    target: ListenerTarget
    event_type: str
    handler: Callable[[InteractionEvent], None]
    action: str
    capture: bool = True
    passive: bool = False
    id: int = field(default_factory=lambda: next(_LISTENER_IDS))

    def to_manifest(self) -> Dict[str, Any]:
        return {
            "target": self.target,
            "type": self.event_type,
            "action": self.action,
            "capture": self.capture,
            "passive": self.passive,
        }


@dataclass
class Node:
    tag: str
    id: str
    attributes: Dict[str, str] = field(default_factory=dict)
    text: str = ""


class ViewerDocument:
    def __init__(self) -> None:
        self._listeners: List[Listener] = []
        self.head: List[Node] = []
        self.body: List[Node] = []
        self.hidden = False

    # Listeners -------------------------------------------------------------
    def add_event_listener(
        self,
        target: ListenerTarget,
        event_type: str,
        handler: Callable[[InteractionEvent], None],
        *,
        action: str,
        capture: bool = True,
        passive: bool = False,
    ) -> Listener:
        listener = Listener(
            target=target,
            event_type=event_type,
            handler=handler,
            action=action,
            capture=capture,
            passive=passive,
        )
        self._listeners.append(listener)
        return listener

    def remove_event_listener(self, listener: Listener) -> bool:
        for index, existing in enumerate(self._listeners):
            if existing.id == listener.id:
                del self._listeners[index]
                return True
        return False

    def listeners(
        self,
        target: Optional[ListenerTarget] = None,
        event_type: Optional[str] = None,
    ) -> List[Listener]:
        return [
            listener
            for listener in self._listeners
            if (target is None or listener.target == target)
            and (event_type is None or listener.event_type == event_type)
        ]

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def dispatch(self, event: InteractionEvent, *, target: ListenerTarget = "document") -> InteractionEvent:
        """Deliver *event*: capture-phase listeners first, then bubbling ones."""

        matching = self.listeners(target, event.type)
        for listener in [item for item in matching if item.capture]:
            listener.handler(event)
        if event.propagation_stopped:
            return event
        for listener in [item for item in matching if not item.capture]:
            listener.handler(event)
        return event

    def set_hidden(self, hidden: bool) -> None:
        self.hidden = hidden
        self.dispatch(InteractionEvent(type="visibilitychange"))

    # Nodes -----------------------------------------------------------------
    def iter_nodes(self) -> Iterator[Node]:
        yield from self.head
        yield from self.body

    def get_element_by_id(self, element_id: str) -> Optional[Node]:
        return next((node for node in self.iter_nodes() if node.id == element_id), None)

    def append_head(self, node: Node) -> Node:
        self.head.append(node)
        return node

    def append_body(self, node: Node) -> Node:
        self.body.append(node)
        return node

    def remove_element(self, element_id: str) -> bool:
        for nodes in (self.head, self.body):
            for index, node in enumerate(nodes):
                if node.id == element_id:
                    del nodes[index]
                    return True
        return False

    def manifest(self) -> Dict[str, Any]:
        """Return the JSON-friendly listener manifest for the browser script."""

        return {"listeners": [listener.to_manifest() for listener in self._listeners]}


__all__ = [
    "Clipboard",
    "InteractionEvent",
    "Listener",
    "ListenerTarget",
    "Node",
    "ViewerDocument",
]
