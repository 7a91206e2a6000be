import pytest

from coursedesk.viewer.policy import resolve_policy
from coursedesk.viewer.renderer import (
    EMBED_SANDBOX,
    RendererKind,
    ViewRequest,
    build_public_url,
    build_view_target,
    encode_uri_component,
    google_viewer_url,
    is_public_origin,
    office_viewer_url,
    parse_csv,
    pdf_fragment,
    select_renderer,
)


@pytest.mark.parametrize(
    "extension, expected",
    [
        ("pdf", RendererKind.NATIVE_EMBED),
        ("DOCX", RendererKind.OFFICE_ONLINE_EMBED),
        ("xls", RendererKind.OFFICE_ONLINE_EMBED),
        ("pptx", RendererKind.OFFICE_ONLINE_EMBED),
        ("csv", RendererKind.TABLE_VIEW),
        ("zip", RendererKind.FALLBACK_DOWNLOAD),
        (None, RendererKind.FALLBACK_DOWNLOAD),
    ],
)
def test_select_renderer(extension, expected) -> None:
    assert select_renderer(extension) is expected


def test_pdf_fragment_depends_on_copy_block() -> None:
    assert pdf_fragment(resolve_policy("teacher", "pdf")) == "#toolbar=0&navpanes=0"
    assert pdf_fragment(resolve_policy("homework", "pdf")) == "#toolbar=0"


def test_external_viewer_urls_encode_public_url() -> None:
    public_url = "https://x.test/a b.docx"

    assert encode_uri_component(public_url) == "https%3A%2F%2Fx.test%2Fa%20b.docx"
    assert office_viewer_url(public_url) == (
        "https://view.officeapps.live.com/op/embed.aspx?src=https%3A%2F%2Fx.test%2Fa%20b.docx"
    )
    assert google_viewer_url(public_url) == (
        "https://docs.google.com/gview?url=https%3A%2F%2Fx.test%2Fa%20b.docx&embedded=true"
    )


def test_build_public_url() -> None:
    assert build_public_url("/uploads/a.pptx", "https://x.test/") == "https://x.test/uploads/a.pptx"
    assert build_public_url("uploads/a.pptx", None) == "/uploads/a.pptx"
    assert build_public_url("https://cdn.test/a.pptx", "https://x.test") == "https://cdn.test/a.pptx"


@pytest.mark.parametrize(
    "url, expected",
    [
        ("https://courses.example.com", True),
        ("http://8.8.8.8:8000", True),
        ("http://localhost:8000", False),
        ("http://127.0.0.1:8000", False),
        ("http://192.168.1.20", False),
        ("http://fileserver.local", False),
        ("http://intranet", False),
        (None, False),
    ],
)
def test_is_public_origin(url, expected) -> None:
    assert is_public_origin(url) is expected


def test_parse_csv_drops_blank_lines_and_trims_cells() -> None:
    assert parse_csv("a,b\n1,2\n3,4") == [["a", "b"], ["1", "2"], ["3", "4"]]
    assert parse_csv(" a , b \n\n1\n") == [["a", "b"], ["1"]]
    assert parse_csv('"x,y",z') == [['"x', 'y"', "z"]]


def test_view_request_defaults() -> None:
    request = ViewRequest.build("/uploads/teacher-files/1_abc.PDF")

    assert request.extension == "pdf"
    assert request.file_name == "1_abc.PDF"
    assert request.category.value == "student"
    assert not request.is_slide_deck
    assert ViewRequest.build("", extension="pdf").file_name == "Document"


def test_build_view_target_for_each_renderer() -> None:
    base = "https://x.test"

    pdf = ViewRequest.build("/uploads/teacher-files/1.pdf", category="teacher")
    target = build_view_target(pdf, resolve_policy("teacher", "pdf"), public_base_url=base)
    assert target.kind is RendererKind.NATIVE_EMBED
    assert target.src == "/uploads/teacher-files/1.pdf#toolbar=0&navpanes=0"
    assert target.sandbox is None

    doc = ViewRequest.build("/uploads/student-files/2.docx", category="student")
    target = build_view_target(doc, resolve_policy("student", "docx"), public_base_url=base)
    assert target.kind is RendererKind.OFFICE_ONLINE_EMBED
    assert target.src == office_viewer_url("https://x.test/uploads/student-files/2.docx")
    assert target.sandbox == EMBED_SANDBOX
    assert target.providers == ()

    deck = ViewRequest.build("/uploads/lesson-files/3.pptx", category="slides")
    target = build_view_target(deck, resolve_policy("slides", "pptx"), public_base_url=base)
    assert [provider.name for provider in target.providers] == ["office-online", "google-docs"]
    assert target.src == target.providers[0].url
    assert target.public_url == "https://x.test/uploads/lesson-files/3.pptx"

    table = ViewRequest.build("/uploads/homework-files/4.csv", category="homework")
    target = build_view_target(table, resolve_policy("homework", "csv"), public_base_url=base)
    assert target.kind is RendererKind.TABLE_VIEW
    assert target.src == "/uploads/homework-files/4.csv"


def test_fallback_target_only_links_downloadable_files() -> None:
    archive = ViewRequest.build("/uploads/teacher-files/5.zip", category="teacher")
    protected = build_view_target(archive, resolve_policy("teacher", "zip"), public_base_url=None)
    assert protected.kind is RendererKind.FALLBACK_DOWNLOAD
    assert protected.src is None

    homework = ViewRequest.build("/uploads/homework-files/6.zip", category="homework")
    target = build_view_target(homework, resolve_policy("homework", "zip"), public_base_url=None)
    assert target.src == "/uploads/homework-files/6.zip"
