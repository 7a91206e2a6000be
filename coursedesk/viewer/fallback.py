"""Primary/secondary provider fallback for slide decks.

Slide decks are shown through Microsoft Office Online first and the Google
Docs viewer second. A provider gets ``timeout`` seconds to load; then its
rendered text is probed for known failure phrases. When the frame is
cross-origin the probe returns ``None`` and a short message window opens
during which the provider may report a failure. No third attempt is made.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
import secrets
import threading
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from ..config import (
    DEFAULT_MESSAGE_WINDOW_SECONDS,
    DEFAULT_SESSION_RETENTION_SECONDS,
    DEFAULT_VIEWER_TIMEOUT_SECONDS,
)
from ..errors import NotFoundError, ProviderRenderError
from ..services.events import emit_viewer_event
from .renderer import ViewerProvider, slide_providers

LOGGER = logging.getLogger(__name__)

ERROR_MARKERS: Tuple[str, ...] = ("error", "can't open", "sorry")

FAILED_MESSAGE = (
    "This presentation could not be displayed by the online viewers. "
    "Office Online and Google Docs both need a publicly reachable file URL."
)


class ViewerState(str, Enum):
    IDLE = "idle"
    PRIMARY = "primary"
    SECONDARY = "secondary"
    FAILED = "failed"


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        ...


class AsyncioScheduler:
    """Schedule callbacks on an asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay, callback)


class _ManualHandle:
    def __init__(self) -> None:
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Deterministic scheduler advanced explicitly with :meth:`advance`."""

    def __init__(self) -> None:
        self.now = 0.0
        self._queue: List[Tuple[float, int, _ManualHandle, Callable[[], None]]] = []
        self._sequence = itertools.count()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        handle = _ManualHandle()
        heapq.heappush(self._queue, (self.now + float(delay), next(self._sequence), handle, callback))
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for _, _, handle, _ in self._queue if not handle.cancelled)

    def advance(self, seconds: float) -> None:
        deadline = self.now + float(seconds)
        while self._queue and self._queue[0][0] <= deadline:
            due, _, handle, callback = heapq.heappop(self._queue)
            self.now = due
            if not handle.cancelled:
                callback()
        self.now = deadline


def is_failure_text(text: Optional[str]) -> bool:
    if not text:
        return False
    lowered = text.lower()
    return any(marker in lowered for marker in ERROR_MARKERS)


ContentProbe = Callable[[], Optional[str]]
TransitionListener = Callable[[ViewerState, ViewerState], None]
SettledListener = Callable[["SlideViewerSession"], None]


class SlideViewerSession:
    """State machine driving provider fallback for one slide viewer."""

    def __init__(
        self,
        public_url: str,
        *,
        scheduler: Scheduler,
        probe: Optional[ContentProbe] = None,
        timeout: float = DEFAULT_VIEWER_TIMEOUT_SECONDS,
        message_window: float = DEFAULT_MESSAGE_WINDOW_SECONDS,
        token: Optional[str] = None,
    ) -> None:
        self.token = token or secrets.token_hex(16)
        self._scheduler = scheduler
        self._probe = probe
        self._timeout = float(timeout)
        self._message_window = float(message_window)
        self._lock = threading.RLock()
        self._listeners: List[TransitionListener] = []
        self._settled_listeners: List[SettledListener] = []
        self._timer: Optional[TimerHandle] = None
        self._epoch = 0
        self._closed = False
        self._public_url = public_url
        self._providers: Sequence[ViewerProvider] = slide_providers(public_url)
        self._probe_content: Optional[str] = None
        self.state = ViewerState.IDLE
        self.loaded = False
        self.window_open = False
        self.last_error: Optional[ProviderRenderError] = None

    # Listeners -------------------------------------------------------------
    def add_listener(self, listener: TransitionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def add_settled_listener(self, listener: SettledListener) -> None:
        """Call *listener* whenever the session loads a provider or fails for good."""

        self._settled_listeners.append(listener)

    # Properties ------------------------------------------------------------
    @property
    def public_url(self) -> str:
        return self._public_url

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def provider(self) -> Optional[ViewerProvider]:
        if self.state is ViewerState.PRIMARY:
            return self._providers[0]
        if self.state is ViewerState.SECONDARY:
            return self._providers[1]
        return None

    @property
    def pending(self) -> bool:
        return self.provider is not None and not self.loaded

    @property
    def settled(self) -> bool:
        return self.loaded or self.state is ViewerState.FAILED

    # Public operations -------------------------------------------------------
    def start(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._enter(ViewerState.PRIMARY, reason="start")

    def select(self, public_url: str) -> None:
        """Switch to a different file and restart from the primary provider."""

        with self._lock:
            if self._closed:
                return
            self._public_url = public_url
            self._providers = slide_providers(public_url)
            self._enter(ViewerState.PRIMARY, reason="select")

    def close(self) -> None:
        with self._lock:
            self._cancel_timer()
            self._closed = True
            self._listeners.clear()
            self._settled_listeners.clear()

    def report_probe(self, content: Optional[str]) -> None:
        """Record the embed's rendered text; ``None`` means it is cross-origin."""

        with self._lock:
            self._probe_content = content

    def report_message(self, message: Any) -> bool:
        """Handle a message posted by the provider frame.

        Returns ``True`` when the message failed the current provider.
        """

        with self._lock:
            if self._closed or not self.pending:
                return False
            text = message if isinstance(message, str) else str(message or "")
            if not is_failure_text(text):
                return False
            self._fail(ProviderRenderError(self.provider.name, text.strip()[:200]))
            return True

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            provider = self.provider
            return {
                "token": self.token,
                "state": self.state.value,
                "loaded": self.loaded,
                "window_open": self.window_open,
                "provider": provider.to_dict() if provider is not None else None,
                "public_url": self._public_url,
                "error": str(self.last_error) if self.last_error is not None else None,
                "message": FAILED_MESSAGE if self.state is ViewerState.FAILED else None,
            }

    # Internals ---------------------------------------------------------------
    def _cancel_timer(self) -> None:
        self._epoch += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _arm(self, delay: float, callback: Callable[[], None]) -> None:
        self._cancel_timer()
        epoch = self._epoch

        def fire() -> None:
            with self._lock:
                if self._closed or epoch != self._epoch:
                    return
                self._timer = None
                callback()

        self._timer = self._scheduler.call_later(delay, fire)

    def _enter(self, state: ViewerState, *, reason: str) -> None:
        self._cancel_timer()
        previous = self.state
        self.state = state
        self.loaded = False
        self.window_open = False
        self._probe_content = None
        if state in (ViewerState.PRIMARY, ViewerState.SECONDARY):
            self._arm(self._timeout, self._on_timeout)
        provider = self.provider
        emit_viewer_event(
            "transition",
            payload={
                "session": self.token,
                "from": previous.value,
                "to": state.value,
                "reason": reason,
                "provider": provider.name if provider is not None else None,
            },
        )
        for listener in list(self._listeners):
            listener(previous, state)
        if state is ViewerState.FAILED:
            self._notify_settled()

    def _on_timeout(self) -> None:
        provider = self.provider
        if provider is None:
            return
        try:
            content = self._probe() if self._probe is not None else self._probe_content
        except ProviderRenderError as error:
            self._fail(error)
            return
        if content is None:
            self.window_open = True
            self._arm(self._message_window, self._on_window_closed)
            return
        if is_failure_text(content):
            self._fail(ProviderRenderError(provider.name, content.strip()[:200]))
            return
        self._mark_loaded()

    def _on_window_closed(self) -> None:
        self.window_open = False
        self._mark_loaded()

    def _mark_loaded(self) -> None:
        self.loaded = True
        provider = self.provider
        emit_viewer_event(
            "provider_loaded",
            payload={"session": self.token, "provider": provider.name if provider else None},
            level=logging.DEBUG,
        )
        self._notify_settled()

    def _notify_settled(self) -> None:
        for listener in list(self._settled_listeners):
            listener(self)

    def _fail(self, error: ProviderRenderError) -> None:
        self.last_error = error
        LOGGER.info("Slide viewer provider failed: %s", error)
        if self.state is ViewerState.PRIMARY:
            self._enter(ViewerState.SECONDARY, reason="primary_failed")
        elif self.state is ViewerState.SECONDARY:
            self._enter(ViewerState.FAILED, reason="secondary_failed")


class ViewerSessionRegistry:
    """In-memory registry of open slide viewer sessions.

    A session that has loaded a provider or failed for good stays reachable
    for ``retention`` seconds and is then evicted, so abandoned viewers do not
    accumulate. Selecting a new file before that restarts the session and the
    eviction is skipped until it settles again.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        *,
        timeout: float = DEFAULT_VIEWER_TIMEOUT_SECONDS,
        message_window: float = DEFAULT_MESSAGE_WINDOW_SECONDS,
        retention: float = DEFAULT_SESSION_RETENTION_SECONDS,
    ) -> None:
        self._scheduler = scheduler
        self._timeout = timeout
        self._message_window = message_window
        self._retention = float(retention)
        self._sessions: Dict[str, SlideViewerSession] = {}
        self._evictions: Dict[str, TimerHandle] = {}
        self._lock = threading.Lock()

    def open(self, public_url: str) -> SlideViewerSession:
        session = SlideViewerSession(
            public_url,
            scheduler=self._scheduler,
            timeout=self._timeout,
            message_window=self._message_window,
        )
        session.add_settled_listener(self._schedule_eviction)
        with self._lock:
            self._sessions[session.token] = session
        session.start()
        return session

    def get(self, token: str) -> SlideViewerSession:
        with self._lock:
            session = self._sessions.get(token)
        if session is None:
            raise NotFoundError(f"Viewer session '{token}' not found")
        return session

    def close(self, token: str) -> bool:
        with self._lock:
            session = self._sessions.pop(token, None)
            handle = self._evictions.pop(token, None)
        if handle is not None:
            handle.cancel()
        if session is None:
            return False
        session.close()
        return True

    def close_all(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            handles = list(self._evictions.values())
            self._sessions.clear()
            self._evictions.clear()
        for handle in handles:
            handle.cancel()
        for session in sessions:
            session.close()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _schedule_eviction(self, session: SlideViewerSession) -> None:
        token = session.token
        handle = self._scheduler.call_later(self._retention, lambda: self._evict(token))
        with self._lock:
            previous = self._evictions.pop(token, None)
            if token in self._sessions:
                self._evictions[token] = handle
            else:
                handle.cancel()
        if previous is not None:
            previous.cancel()

    def _evict(self, token: str) -> None:
        with self._lock:
            self._evictions.pop(token, None)
            session = self._sessions.get(token)
            if session is None or not session.settled:
                return
            del self._sessions[token]
        session.close()
        LOGGER.debug("Evicted settled viewer session %s", token)


__all__ = [
    "AsyncioScheduler",
    "ERROR_MARKERS",
    "FAILED_MESSAGE",
    "ManualScheduler",
    "Scheduler",
    "SlideViewerSession",
    "TimerHandle",
    "ViewerSessionRegistry",
    "ViewerState",
    "is_failure_text",
]
