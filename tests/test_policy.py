import itertools

import pytest

from coursedesk.viewer.policy import (
    COPY_DISABLED_BANNER,
    DOWNLOAD_DISABLED_BANNER,
    PROTECTED_BANNER,
    CapabilitySet,
    FileCategory,
    badge_for,
    banner_for,
    describe_policy,
    normalize_extension,
    parse_category,
    resolve_policy,
    subtitle_for,
)


EXTENSIONS = ("pdf", "doc", "docx", "xls", "xlsx", "csv", "ppt", "pptx")
DOWNLOADABLE = {"student", "homework"}
COPY_BLOCKED = {"teacher", "student"}
SLIDE_EXTENSIONS = {"ppt", "pptx"}


@pytest.mark.parametrize(
    "category, extension",
    list(itertools.product(("teacher", "student", "homework", "slides"), EXTENSIONS)),
)
def test_resolve_policy_table(category, extension) -> None:
    capabilities = resolve_policy(category, extension)

    assert capabilities.allow_download is (category in DOWNLOADABLE)
    assert capabilities.block_copy is (category in COPY_BLOCKED or extension in SLIDE_EXTENSIONS)
    assert capabilities.block_screenshot_visual is (category == "teacher")


@pytest.mark.parametrize("extension", EXTENSIONS)
def test_unknown_category_never_grants_download(extension) -> None:
    capabilities = resolve_policy("bogus", extension)

    assert capabilities.allow_download is False
    assert capabilities.block_screenshot_visual is False
    assert capabilities.block_copy is (extension in SLIDE_EXTENSIONS)


def test_resolve_policy_is_deterministic() -> None:
    assert resolve_policy("teacher", "PDF") == resolve_policy(FileCategory.TEACHER, ".pdf")


def test_parse_category_aliases_and_default() -> None:
    assert parse_category("PPTX") is FileCategory.SLIDES
    assert parse_category("slide") is FileCategory.SLIDES
    assert parse_category(" Teacher ") is FileCategory.TEACHER
    assert parse_category(None) is FileCategory.STUDENT
    assert parse_category("") is FileCategory.STUDENT
    assert parse_category("unknown") is FileCategory.OTHER


def test_normalize_extension_strips_paths_and_dots() -> None:
    assert normalize_extension(".PDF") == "pdf"
    assert normalize_extension("/uploads/teacher-files/1_abc.docx") == "docx"
    assert normalize_extension(None) == ""


def test_banners_follow_capabilities() -> None:
    assert banner_for("teacher", resolve_policy("teacher", "pdf")) is PROTECTED_BANNER
    assert banner_for("student", resolve_policy("student", "pdf")) is COPY_DISABLED_BANNER
    assert banner_for("homework", resolve_policy("homework", "pdf")) is None
    assert banner_for("slides", resolve_policy("slides", "pptx")) is COPY_DISABLED_BANNER
    assert (
        banner_for("slides", CapabilitySet(allow_download=False, block_copy=False, block_screenshot_visual=False))
        is DOWNLOAD_DISABLED_BANNER
    )


def test_badges_and_subtitles() -> None:
    assert badge_for("teacher") == "Protected"
    assert badge_for("student") == "Downloadable"
    assert badge_for("homework") == "Downloadable"
    assert badge_for("slides") is None
    assert subtitle_for("teacher") == "Teacher File - View Only"
    assert subtitle_for("homework") == "Homework File - View & Download"
    assert badge_for("bogus") is None
    assert subtitle_for("bogus") == "File - View Only"
    assert banner_for("bogus", resolve_policy("bogus", "pdf")) is DOWNLOAD_DISABLED_BANNER


def test_describe_policy_payload() -> None:
    summary = describe_policy("teacher", "pdf")

    assert summary["category"] == "teacher"
    assert summary["extension"] == "pdf"
    assert summary["capabilities"] == {
        "allow_download": False,
        "block_copy": True,
        "block_screenshot_visual": True,
    }
    assert summary["banner"]["title"] == "Protected Content"
    assert summary["badge"] == "Protected"
