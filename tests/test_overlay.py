from __future__ import annotations

from coursedesk.viewer.document import Clipboard, InteractionEvent, ViewerDocument
from coursedesk.viewer.overlay import (
    BLOCKED_EVENTS,
    STYLE_ELEMENT_ID,
    WATERMARK_ELEMENT_ID,
    ProtectionOverlay,
    is_blocked_key,
)
from coursedesk.viewer.policy import resolve_policy


TEACHER_CAPS = resolve_policy("teacher", "pdf")
STUDENT_CAPS = resolve_policy("student", "pdf")
HOMEWORK_CAPS = resolve_policy("homework", "pdf")


def _overlay():
    document = ViewerDocument()
    return document, ProtectionOverlay(document)


def test_teacher_activation_installs_blocks_and_watermark() -> None:
    document, overlay = _overlay()

    overlay.activate(TEACHER_CAPS)

    assert overlay.is_active
    assert document.get_element_by_id(STYLE_ELEMENT_ID) is not None
    watermark = document.get_element_by_id(WATERMARK_ELEMENT_ID)
    assert watermark is not None
    assert "z-index: 2147483647" in watermark.attributes["style"]
    for event_type in BLOCKED_EVENTS:
        event = document.dispatch(InteractionEvent(type=event_type))
        assert event.default_prevented
        assert event.propagation_stopped


def test_student_activation_has_no_watermark() -> None:
    document, overlay = _overlay()

    overlay.activate(STUDENT_CAPS)

    assert document.get_element_by_id(STYLE_ELEMENT_ID) is not None
    assert document.get_element_by_id(WATERMARK_ELEMENT_ID) is None
    assert document.listeners("document", "visibilitychange") == []


def test_activation_without_copy_block_is_a_noop() -> None:
    document, overlay = _overlay()

    deactivate = overlay.activate(HOMEWORK_CAPS)
    deactivate()

    assert not overlay.is_active
    assert document.listener_count == 0
    assert list(document.iter_nodes()) == []


def test_copy_event_clears_clipboard() -> None:
    document, overlay = _overlay()
    overlay.activate(STUDENT_CAPS)
    clipboard = Clipboard({"text/plain": "secret"})

    event = document.dispatch(InteractionEvent(type="copy", clipboard=clipboard))

    assert event.default_prevented
    assert clipboard.get_data("text/plain") == ""


def test_keyboard_and_mouse_blocks() -> None:
    document, overlay = _overlay()
    overlay.activate(TEACHER_CAPS)

    blocked = [
        InteractionEvent(type="keydown", key="F12"),
        InteractionEvent(type="keydown", key="PrintScreen"),
        InteractionEvent(type="keydown", key="s", ctrl_key=True),
        InteractionEvent(type="keydown", key="P", meta_key=True, shift_key=True),
        InteractionEvent(type="keydown", key="I", ctrl_key=True, shift_key=True),
    ]
    for event in blocked:
        assert document.dispatch(event).default_prevented, event.key

    allowed = [
        InteractionEvent(type="keydown", key="s"),
        InteractionEvent(type="keydown", key="i", ctrl_key=True),
        InteractionEvent(type="keydown", key="ArrowDown"),
    ]
    for event in allowed:
        assert not document.dispatch(event).default_prevented, event.key

    assert document.dispatch(InteractionEvent(type="mousedown", button=2)).default_prevented
    assert not document.dispatch(InteractionEvent(type="mousedown", button=0)).default_prevented


def test_is_blocked_key_devtools_requires_shift() -> None:
    assert is_blocked_key(InteractionEvent(type="keydown", key="j", ctrl_key=True, shift_key=True))
    assert not is_blocked_key(InteractionEvent(type="keydown", key="j", ctrl_key=True))


def test_bubbling_listeners_skipped_once_blocked() -> None:
    document, overlay = _overlay()
    seen = []
    document.add_event_listener(
        "document", "contextmenu", lambda event: seen.append(event), action="page", capture=False
    )
    overlay.activate(STUDENT_CAPS)

    document.dispatch(InteractionEvent(type="contextmenu"))

    assert seen == []


def test_deactivation_restores_document() -> None:
    document, overlay = _overlay()

    deactivate = overlay.activate(TEACHER_CAPS)
    deactivate()

    assert not overlay.is_active
    assert document.listener_count == 0
    assert list(document.iter_nodes()) == []
    assert not document.dispatch(InteractionEvent(type="copy")).default_prevented


def test_deactivate_is_idempotent_and_reference_counted() -> None:
    document, overlay = _overlay()

    first = overlay.activate(TEACHER_CAPS)
    second = overlay.activate(TEACHER_CAPS)
    installed = document.listener_count
    assert overlay.ref_count == 2

    first()
    first()
    assert overlay.ref_count == 1
    assert document.listener_count == installed

    second()
    assert overlay.ref_count == 0
    assert document.listener_count == 0


def test_different_capabilities_replace_installation() -> None:
    document, overlay = _overlay()

    stale = overlay.activate(TEACHER_CAPS)
    current = overlay.activate(STUDENT_CAPS)

    assert overlay.capabilities == STUDENT_CAPS
    assert overlay.ref_count == 1
    assert document.get_element_by_id(WATERMARK_ELEMENT_ID) is None

    stale()
    assert overlay.is_active

    current()
    assert document.listener_count == 0


def test_reset_invalidates_outstanding_handles() -> None:
    document, overlay = _overlay()

    stale = overlay.activate(STUDENT_CAPS)
    overlay.reset()
    assert document.listener_count == 0

    fresh = overlay.activate(STUDENT_CAPS)
    stale()
    assert overlay.is_active
    fresh()
    assert not overlay.is_active


def test_session_context_manager_releases_on_exit() -> None:
    document, overlay = _overlay()

    with overlay.session(TEACHER_CAPS):
        assert overlay.is_active

    assert not overlay.is_active
    assert document.listener_count == 0


def test_visibility_change_is_logged_for_teacher_files(caplog) -> None:
    document, overlay = _overlay()
    overlay.activate(TEACHER_CAPS)

    with caplog.at_level("WARNING", logger="coursedesk.viewer.overlay"):
        document.set_hidden(True)

    assert "visibility" in caplog.text.lower()


def test_repeated_mixed_activation_cycles_leave_nothing_behind() -> None:
    document, overlay = _overlay()

    for cycle in range(50):
        capabilities = TEACHER_CAPS if cycle % 2 == 0 else STUDENT_CAPS
        first = overlay.activate(capabilities)
        second = overlay.activate(capabilities)
        assert overlay.is_active
        first()
        assert overlay.is_active
        second()
        assert not overlay.is_active

    for cycle in range(50):
        stale = overlay.activate(TEACHER_CAPS)
        current = overlay.activate(STUDENT_CAPS)
        stale()
        assert overlay.capabilities == STUDENT_CAPS
        current()

    assert not overlay.is_active
    assert document.listener_count == 0
    assert list(document.iter_nodes()) == []
