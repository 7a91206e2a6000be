"""Rendering strategy selection for in-browser document viewing."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote, urlsplit

from .policy import CapabilitySet, FileCategory, SLIDE_EXTENSIONS, normalize_extension, parse_category


class RendererKind(str, Enum):
    NATIVE_EMBED = "native-embed"
    OFFICE_ONLINE_EMBED = "office-online-embed"
    TABLE_VIEW = "table-view"
    FALLBACK_DOWNLOAD = "fallback-download"


NATIVE_EXTENSIONS = frozenset({"pdf"})
OFFICE_EXTENSIONS = frozenset({"doc", "docx", "xls", "xlsx"})
TABLE_EXTENSIONS = frozenset({"csv"})

OFFICE_VIEWER_URL = "https://view.officeapps.live.com/op/embed.aspx"
GOOGLE_VIEWER_URL = "https://docs.google.com/gview"

EMBED_SANDBOX = "allow-same-origin allow-scripts"

# encodeURIComponent leaves these unescaped; external viewers expect the same form.
_URI_COMPONENT_SAFE = "!~*'()"

_LOCAL_HOSTNAMES = frozenset({"localhost", "localhost.localdomain", "ip6-localhost"})


@dataclass(frozen=True)
class ViewRequest:
    """A document the viewer has been asked to show."""

    file_path: str
    extension: str
    category: FileCategory
    file_name: str

    @classmethod
    def build(
        cls,
        file_path: str,
        *,
        extension: Optional[str] = None,
        category: Any = None,
        file_name: Optional[str] = None,
    ) -> "ViewRequest":
        path = str(file_path or "").strip()
        ext = normalize_extension(extension) or normalize_extension(PurePosixPath(path).suffix)
        name = (file_name or "").strip() or PurePosixPath(path).name or "Document"
        return cls(
            file_path=path,
            extension=ext,
            category=parse_category(category),
            file_name=name,
        )

    @property
    def is_slide_deck(self) -> bool:
        return self.extension in SLIDE_EXTENSIONS

    def to_dict(self) -> Dict[str, str]:
        return {
            "file_path": self.file_path,
            "extension": self.extension,
            "category": self.category.value,
            "file_name": self.file_name,
        }


@dataclass(frozen=True)
class ViewerProvider:
    """An online viewer able to render office documents from a public URL."""

    name: str
    label: str
    url: str

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "label": self.label, "url": self.url}


@dataclass(frozen=True)
class ViewTarget:
    kind: RendererKind
    src: Optional[str]
    providers: Tuple[ViewerProvider, ...] = field(default_factory=tuple)
    sandbox: Optional[str] = None
    public_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "src": self.src,
            "providers": [provider.to_dict() for provider in self.providers],
            "sandbox": self.sandbox,
            "public_url": self.public_url,
        }


def select_renderer(extension: Optional[str]) -> RendererKind:
    ext = normalize_extension(extension)
    if ext in NATIVE_EXTENSIONS:
        return RendererKind.NATIVE_EMBED
    if ext in OFFICE_EXTENSIONS or ext in SLIDE_EXTENSIONS:
        return RendererKind.OFFICE_ONLINE_EMBED
    if ext in TABLE_EXTENSIONS:
        return RendererKind.TABLE_VIEW
    return RendererKind.FALLBACK_DOWNLOAD


def pdf_fragment(capabilities: CapabilitySet) -> str:
    """Return the URL fragment that hides the native PDF toolbar."""

    if capabilities.block_copy:
        return "#toolbar=0&navpanes=0"
    return "#toolbar=0"


def encode_uri_component(value: str) -> str:
    return quote(value, safe=_URI_COMPONENT_SAFE)


def build_public_url(file_path: str, base_url: Optional[str]) -> str:
    """Join *file_path* onto *base_url*; absolute URLs are returned unchanged."""

    if urlsplit(file_path).scheme in {"http", "https"}:
        return file_path
    path = file_path if file_path.startswith("/") else f"/{file_path}"
    if not base_url:
        return path
    return f"{base_url.rstrip('/')}{path}"


def office_viewer_url(public_url: str) -> str:
    return f"{OFFICE_VIEWER_URL}?src={encode_uri_component(public_url)}"


def google_viewer_url(public_url: str) -> str:
    return f"{GOOGLE_VIEWER_URL}?url={encode_uri_component(public_url)}&embedded=true"


def slide_providers(public_url: str) -> Tuple[ViewerProvider, ViewerProvider]:
    """Return the primary and secondary viewers tried for slide decks."""

    return (
        ViewerProvider("office-online", "Microsoft Office Online", office_viewer_url(public_url)),
        ViewerProvider("google-docs", "Google Docs Viewer", google_viewer_url(public_url)),
    )


def is_public_origin(url: Optional[str]) -> bool:
    """Return ``False`` for origins an external viewer cannot reach."""

    if not url:
        return False
    host = urlsplit(url).hostname
    if not host:
        return False
    host = host.lower()
    if host in _LOCAL_HOSTNAMES or host.endswith(".local") or host.endswith(".localhost"):
        return False
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return "." in host
    return not (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_unspecified
        or address.is_reserved
    )


def parse_csv(text: str) -> List[List[str]]:
    """Split CSV *text* into trimmed rows.

    Quoted fields are not understood: a comma inside quotes still splits the
    cell. Blank lines are dropped and ragged rows are kept as they are.
    """

    rows: List[List[str]] = []
    for line in text.split("\n"):
        if not line.strip():
            continue
        rows.append([cell.strip() for cell in line.split(",")])
    return rows


def build_view_target(
    request: ViewRequest,
    capabilities: CapabilitySet,
    *,
    public_base_url: Optional[str],
) -> ViewTarget:
    kind = select_renderer(request.extension)
    if kind is RendererKind.NATIVE_EMBED:
        return ViewTarget(kind=kind, src=f"{request.file_path}{pdf_fragment(capabilities)}")
    if kind is RendererKind.OFFICE_ONLINE_EMBED:
        public_url = build_public_url(request.file_path, public_base_url)
        if request.is_slide_deck:
            providers = slide_providers(public_url)
            return ViewTarget(
                kind=kind,
                src=providers[0].url,
                providers=providers,
                sandbox=EMBED_SANDBOX,
                public_url=public_url,
            )
        return ViewTarget(
            kind=kind,
            src=office_viewer_url(public_url),
            sandbox=EMBED_SANDBOX,
            public_url=public_url,
        )
    if kind is RendererKind.TABLE_VIEW:
        return ViewTarget(kind=kind, src=request.file_path)
    return ViewTarget(kind=kind, src=request.file_path if capabilities.allow_download else None)


__all__ = [
    "EMBED_SANDBOX",
    "GOOGLE_VIEWER_URL",
    "OFFICE_VIEWER_URL",
    "RendererKind",
    "ViewRequest",
    "ViewTarget",
    "ViewerProvider",
    "build_public_url",
    "build_view_target",
    "encode_uri_component",
    "google_viewer_url",
    "is_public_origin",
    "office_viewer_url",
    "parse_csv",
    "pdf_fragment",
    "select_renderer",
    "slide_providers",
]
