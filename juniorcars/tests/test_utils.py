import pytest

from juniorcars.errors import ValidationFailed
from juniorcars.schemas import HeroData, PageListQuery, validate_block_data, validate_payload
from juniorcars.utils import escape_like, generate_slug, is_valid_slug, sanitize_html, timestamp_suffixed_slug


def test_generate_slug():
    assert generate_slug("Porsche 356 Speedster!") == "porsche-356-speedster"
    assert generate_slug("  ") == ""
    assert is_valid_slug("series-1")
    assert not is_valid_slug("Series_1")


def test_timestamp_suffixed_slug():
    suffixed = timestamp_suffixed_slug("home")
    prefix, _, stamp = suffixed.rpartition("-")
    assert prefix == "home"
    assert stamp.isdigit() and len(stamp) >= 13

    trimmed = timestamp_suffixed_slug("ab-" * 70)
    assert len(trimmed) <= 200
    assert "--" not in trimmed


def test_escape_like():
    assert escape_like("50%_off\\") == "50\\%\\_off\\\\"


def test_sanitize_html_strips_scripts_and_handlers():
    cleaned = sanitize_html('<p onclick="x()">Hi <a href="javascript:alert(1)">link</a></p><script>bad()</script>')
    assert "onclick" not in cleaned
    assert "javascript:" not in cleaned
    assert "<script>" not in cleaned
    assert cleaned.startswith("<p>Hi <a>link</a></p>")


def test_hero_urls_must_be_relative_or_http():
    assert validate_payload(HeroData, {"image": "/images/a.jpg"}).image == "/images/a.jpg"
    assert validate_payload(HeroData, {"ctaUrl": "https://example.com/x"}).cta_url == "https://example.com/x"
    for bad in ("//evil.example.com/a.jpg", "javascript:alert(1)", "ftp://example.com/a.jpg"):
        with pytest.raises(ValidationFailed):
            validate_payload(HeroData, {"image": bad})


def test_block_data_keeps_extra_keys():
    data = validate_block_data("text", {"content": "Hello", "alignment": "center", "anchor": "intro"})
    assert data == {"content": "Hello", "alignment": "center", "anchor": "intro"}

    with pytest.raises(ValidationFailed) as excinfo:
        validate_block_data("text", {"alignment": "justify"})
    fields = {item["field"] for item in excinfo.value.details}
    assert fields == {"data.content", "data.alignment"}


def test_payload_must_be_an_object():
    with pytest.raises(ValidationFailed) as excinfo:
        validate_payload(HeroData, ["not", "a", "dict"])
    assert excinfo.value.status_code == 400


def test_list_query_accepts_q_alias():
    assert PageListQuery.model_validate({"q": "cars"}).search == "cars"
    assert PageListQuery.model_validate({}).sort_by == "createdAt"
