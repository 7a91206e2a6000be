"""HTML rendering of the document viewer page."""

from __future__ import annotations

import html
import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .document import Node, ViewerDocument
from .fallback import FAILED_MESSAGE
from .overlay import BLOCKED_KEY_COMBOS, ProtectionOverlay
from .policy import Banner, CapabilitySet, banner_for, badge_for, resolve_policy, subtitle_for
from .renderer import RendererKind, ViewRequest, ViewTarget, build_view_target, is_public_origin, parse_csv

LOGGER = logging.getLogger(__name__)

_TEMPLATE_PATH = Path(__file__).resolve().parent / "templates" / "viewer.html"

UNSUPPORTED_TITLE = "This file type cannot be previewed"
UNSUPPORTED_DETAIL = "Supported formats: PDF, DOC, DOCX, XLS, XLSX, CSV"
CSV_ERROR_MESSAGE = "Failed to load CSV file"
TABLE_NO_SELECT_STYLE = (
    "-webkit-user-select: none; -moz-user-select: none; -ms-user-select: none; user-select: none;"
)
PRIVATE_HOST_HINT = (
    "Online viewers fetch the file from this server's public address. "
    "Documents served from a local or private address will not load."
)


@lru_cache(maxsize=1)
def _load_template() -> str:
    return _TEMPLATE_PATH.read_text(encoding="utf-8")


@dataclass
class ViewerPage:
    request: ViewRequest
    capabilities: CapabilitySet
    banner: Optional[Banner]
    target: ViewTarget
    document: ViewerDocument
    overlay: ProtectionOverlay
    csv_rows: Optional[List[List[str]]] = None
    csv_error: Optional[str] = None
    session_token: Optional[str] = None

    def manifest(self) -> Dict[str, Any]:
        payload = self.document.manifest()
        payload["blocked_keys"] = (
            [combo.to_dict() for combo in BLOCKED_KEY_COMBOS] if self.overlay.is_active else []
        )
        return payload


def build_viewer_page(
    request: ViewRequest,
    *,
    public_base_url: Optional[str],
    csv_loader: Optional[Callable[[], str]] = None,
    session_token: Optional[str] = None,
) -> ViewerPage:
    """Resolve policy, renderer and overlay state for *request*."""

    capabilities = resolve_policy(request.category, request.extension)
    target = build_view_target(request, capabilities, public_base_url=public_base_url)
    document = ViewerDocument()
    overlay = ProtectionOverlay(document)
    overlay.activate(capabilities)

    csv_rows: Optional[List[List[str]]] = None
    csv_error: Optional[str] = None
    if target.kind is RendererKind.TABLE_VIEW:
        if csv_loader is None:
            csv_error = CSV_ERROR_MESSAGE
        else:
            try:
                csv_rows = parse_csv(csv_loader())
            except (OSError, ValueError) as error:
                LOGGER.warning("Could not read CSV %s: %s", request.file_path, error)
                csv_error = CSV_ERROR_MESSAGE

    return ViewerPage(
        request=request,
        capabilities=capabilities,
        banner=banner_for(request.category, capabilities),
        target=target,
        document=document,
        overlay=overlay,
        csv_rows=csv_rows,
        csv_error=csv_error,
        session_token=session_token,
    )


def _attr(value: Any) -> str:
    return html.escape(str(value), quote=True)


def _render_node(node: Node) -> str:
    attributes = "".join(f' {name}="{_attr(value)}"' for name, value in node.attributes.items())
    text = node.text if node.tag == "style" else html.escape(node.text)
    return f'<{node.tag} id="{_attr(node.id)}"{attributes}>{text}</{node.tag}>'


def _download_link(page: ViewerPage, css_class: str = "viewer-download") -> str:
    if not page.capabilities.allow_download:
        return ""
    return (
        f'<a class="{css_class}" href="{_attr(page.request.file_path)}" '
        f'download="{_attr(page.request.file_name)}">Download</a>'
    )


def _render_header(page: ViewerPage) -> str:
    badge = badge_for(page.request.category)
    badge_html = ""
    if badge:
        badge_html = (
            f'<span class="viewer-badge viewer-badge-{badge.lower()}">{html.escape(badge)}</span>'
        )
    return (
        '<header class="viewer-header"><div>'
        '<a class="viewer-back" href="/">&larr; Back to Home</a>'
        f"<h1>{html.escape(page.request.file_name)}</h1>"
        f'<p class="viewer-subtitle">{html.escape(subtitle_for(page.request.category))}</p>'
        f"</div>{badge_html}</header>"
    )


def _render_banner(banner: Optional[Banner]) -> str:
    if banner is None:
        return ""
    return (
        f'<div class="viewer-banner viewer-banner-{banner.tone}" role="note">'
        f"<strong>{html.escape(banner.title)}:</strong> {html.escape(banner.text)}</div>"
    )


def _render_placeholder(page: ViewerPage, title: str, detail: Optional[str] = None) -> str:
    detail_html = f"<p>{html.escape(detail)}</p>" if detail else ""
    return (
        f'<div class="viewer-placeholder"><p><strong>{html.escape(title)}</strong></p>'
        f"{detail_html}{_download_link(page, 'viewer-download-inline')}</div>"
    )


def _render_table(page: ViewerPage) -> str:
    if page.csv_error or page.csv_rows is None:
        return _render_placeholder(page, page.csv_error or CSV_ERROR_MESSAGE)
    if not page.csv_rows:
        return _render_placeholder(page, "This file has no rows to display")
    header, *rows = page.csv_rows
    head_html = "".join(f"<th>{html.escape(cell)}</th>" for cell in header)
    body_html = "".join(
        "<tr>" + "".join(f"<td>{html.escape(cell)}</td>" for cell in row) + "</tr>" for row in rows
    )
    return (
        f'<table class="viewer-table" style="{TABLE_NO_SELECT_STYLE}">'
        f"<thead><tr>{head_html}</tr></thead>"
        f"<tbody>{body_html}</tbody></table>{_download_link(page)}"
    )


def _render_office(page: ViewerPage) -> str:
    target = page.target
    hint = ""
    if not is_public_origin(target.public_url):
        hint = f'<p class="viewer-hint">{html.escape(PRIVATE_HOST_HINT)}</p>'
    if page.request.is_slide_deck and page.session_token:
        failed = (
            '<div id="slide-viewer-failed" class="viewer-placeholder" hidden>'
            f'<p><strong>{html.escape("This presentation could not be displayed")}</strong></p>'
            f'<p id="slide-viewer-failed-text">{html.escape(FAILED_MESSAGE)}</p>'
            f"{_download_link(page, 'viewer-download-inline')}</div>"
        )
        return (
            f'{hint}<iframe id="slide-viewer-frame" class="viewer-embed" src="{_attr(target.src)}" '
            f'data-session="{_attr(page.session_token)}" sandbox="{_attr(target.sandbox)}" '
            f'allow="fullscreen" title="{_attr(target.providers[0].label)}"></iframe>{failed}'
        )
    return (
        f'{hint}<iframe class="viewer-embed" src="{_attr(target.src)}" '
        f'sandbox="{_attr(target.sandbox)}" allow="fullscreen" title="Document Viewer"></iframe>'
        f"{_download_link(page)}"
    )


def _render_content(page: ViewerPage) -> str:
    kind = page.target.kind
    if kind is RendererKind.NATIVE_EMBED:
        return (
            f'<object class="viewer-embed" data="{_attr(page.target.src)}" type="application/pdf" '
            f'aria-label="PDF Viewer">{_render_placeholder(page, UNSUPPORTED_TITLE)}</object>'
            f"{_download_link(page)}"
        )
    if kind is RendererKind.OFFICE_ONLINE_EMBED:
        return _render_office(page)
    if kind is RendererKind.TABLE_VIEW:
        return _render_table(page)
    return _render_placeholder(page, UNSUPPORTED_TITLE, UNSUPPORTED_DETAIL)


def _fill_template(replacements: Dict[str, str]) -> str:
    rendered = _load_template()
    for placeholder, value in replacements.items():
        rendered = rendered.replace(placeholder, value)
    return rendered


def render_viewer_page(page: ViewerPage, *, static_base: str = "/static") -> str:
    manifest = json.dumps(page.manifest()).replace("</", "<\\/")
    scripts = ""
    if page.session_token:
        scripts = f'<script src="{_attr(static_base)}/slides.js"></script>'
    return _fill_template(
        {
            "__COURSEDESK_TITLE__": html.escape(page.request.file_name),
            "__COURSEDESK_STATIC__": _attr(static_base),
            "__COURSEDESK_HEAD_NODES__": "".join(_render_node(node) for node in page.document.head),
            "__COURSEDESK_HEADER__": _render_header(page),
            "__COURSEDESK_BANNER__": _render_banner(page.banner),
            "__COURSEDESK_CONTENT__": _render_content(page),
            "__COURSEDESK_BODY_NODES__": "".join(_render_node(node) for node in page.document.body),
            "__COURSEDESK_MANIFEST__": manifest,
            "__COURSEDESK_SCRIPTS__": scripts,
        }
    )


def render_empty_viewer(*, static_base: str = "/static") -> str:
    """Page shown when ``/viewer`` is opened without a file."""

    content = (
        '<div class="viewer-placeholder"><p><strong>No file selected</strong></p>'
        "<p>Select a file from the navigation to view it</p>"
        '<a class="viewer-back" href="/api/navigation">Browse courses</a></div>'
    )
    return _fill_template(
        {
            "__COURSEDESK_TITLE__": "Document Viewer",
            "__COURSEDESK_STATIC__": _attr(static_base),
            "__COURSEDESK_HEAD_NODES__": "",
            "__COURSEDESK_HEADER__": "",
            "__COURSEDESK_BANNER__": "",
            "__COURSEDESK_CONTENT__": content,
            "__COURSEDESK_BODY_NODES__": "",
            "__COURSEDESK_MANIFEST__": json.dumps({"listeners": [], "blocked_keys": []}),
            "__COURSEDESK_SCRIPTS__": "",
        }
    )


__all__ = [
    "CSV_ERROR_MESSAGE",
    "TABLE_NO_SELECT_STYLE",
    "UNSUPPORTED_DETAIL",
    "UNSUPPORTED_TITLE",
    "ViewerPage",
    "build_viewer_page",
    "render_empty_viewer",
    "render_viewer_page",
]
