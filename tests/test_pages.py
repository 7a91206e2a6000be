from __future__ import annotations

import html
import json
import re

from coursedesk.viewer.overlay import STYLE_ELEMENT_ID, WATERMARK_ELEMENT_ID
from coursedesk.viewer.pages import (
    CSV_ERROR_MESSAGE,
    PRIVATE_HOST_HINT,
    TABLE_NO_SELECT_STYLE,
    UNSUPPORTED_TITLE,
    build_viewer_page,
    render_empty_viewer,
    render_viewer_page,
)
from coursedesk.viewer.renderer import ViewRequest


def _manifest(html_text: str) -> dict:
    match = re.search(
        r'<script type="application/json" id="protected-content-manifest">(.*?)</script>',
        html_text,
        re.S,
    )
    assert match is not None
    return json.loads(match.group(1))


def test_teacher_pdf_page_is_fully_protected() -> None:
    request = ViewRequest.build("/uploads/teacher-files/1_abc.pdf", category="teacher", file_name="Syllabus.pdf")
    page = build_viewer_page(request, public_base_url="https://x.test")

    html_text = render_viewer_page(page)

    assert 'data="/uploads/teacher-files/1_abc.pdf#toolbar=0&amp;navpanes=0"' in html_text
    assert "Protected Content" in html_text
    assert "viewer-badge-protected" in html_text
    assert f'id="{STYLE_ELEMENT_ID}"' in html_text
    assert f'id="{WATERMARK_ELEMENT_ID}"' in html_text
    assert "download=" not in html_text

    manifest = _manifest(html_text)
    actions = {listener["action"] for listener in manifest["listeners"]}
    assert {"block", "clear-clipboard", "block-right-button", "block-keys", "log-hidden"} <= actions
    assert manifest["blocked_keys"]


def test_homework_pdf_page_allows_download_without_overlay() -> None:
    request = ViewRequest.build("/uploads/homework-files/1_abc.pdf", category="homework")
    page = build_viewer_page(request, public_base_url=None)

    html_text = render_viewer_page(page)

    assert 'data="/uploads/homework-files/1_abc.pdf#toolbar=0"' in html_text
    assert 'download="1_abc.pdf"' in html_text
    assert STYLE_ELEMENT_ID not in html_text
    assert _manifest(html_text) == {"listeners": [], "blocked_keys": []}


def test_student_page_shows_copy_banner_and_download() -> None:
    request = ViewRequest.build("/uploads/student-files/1.docx", category="student")
    page = build_viewer_page(request, public_base_url="http://localhost:8000")

    html_text = render_viewer_page(page)

    assert "In-viewer download and copy disabled" in html_text
    assert "view.officeapps.live.com" in html_text
    assert 'sandbox="allow-same-origin allow-scripts"' in html_text
    assert html.escape(PRIVATE_HOST_HINT) in html_text
    assert "download=" in html_text
    assert f'id="{WATERMARK_ELEMENT_ID}"' not in html_text


def test_slide_page_wires_session_script() -> None:
    request = ViewRequest.build("/uploads/lesson-files/1.pptx", category="slides")
    page = build_viewer_page(request, public_base_url="https://x.test", session_token="tok123")

    html_text = render_viewer_page(page)

    assert 'id="slide-viewer-frame"' in html_text
    assert 'data-session="tok123"' in html_text
    assert 'id="slide-viewer-failed"' in html_text
    assert "/static/slides.js" in html_text
    assert html.escape(PRIVATE_HOST_HINT) not in html_text


def test_csv_page_renders_table() -> None:
    request = ViewRequest.build("/uploads/homework-files/1.csv", category="homework")
    page = build_viewer_page(request, public_base_url=None, csv_loader=lambda: "a,b\n1,2\n3,4")

    html_text = render_viewer_page(page)

    assert "<thead><tr><th>a</th><th>b</th></tr></thead>" in html_text
    assert "<tr><td>3</td><td>4</td></tr>" in html_text


def test_homework_csv_table_blocks_selection_without_overlay() -> None:
    request = ViewRequest.build("/uploads/homework-files/1.csv", category="homework")
    page = build_viewer_page(request, public_base_url=None, csv_loader=lambda: "name,score\nAda,10")

    html_text = render_viewer_page(page)

    assert not page.capabilities.block_copy
    assert not page.overlay.is_active
    assert f'<table class="viewer-table" style="{TABLE_NO_SELECT_STYLE}">' in html_text
    assert "user-select: none" in html_text
    assert f'id="{STYLE_ELEMENT_ID}"' not in html_text


def test_csv_page_reports_load_failure() -> None:
    def failing_loader() -> str:
        raise FileNotFoundError("gone")

    request = ViewRequest.build("/uploads/teacher-files/1.csv", category="teacher")
    page = build_viewer_page(request, public_base_url=None, csv_loader=failing_loader)

    assert page.csv_error == CSV_ERROR_MESSAGE
    assert CSV_ERROR_MESSAGE in render_viewer_page(page)


def test_unsupported_type_page() -> None:
    protected = build_viewer_page(
        ViewRequest.build("/uploads/teacher-files/1.zip", category="teacher"), public_base_url=None
    )
    downloadable = build_viewer_page(
        ViewRequest.build("/uploads/student-files/1.zip", category="student"), public_base_url=None
    )

    protected_html = render_viewer_page(protected)
    assert UNSUPPORTED_TITLE in protected_html
    assert "download=" not in protected_html
    assert "download=" in render_viewer_page(downloadable)


def test_empty_viewer_page() -> None:
    html_text = render_empty_viewer()

    assert "No file selected" in html_text
    assert "__COURSEDESK_" not in html_text
