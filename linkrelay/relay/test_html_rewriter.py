import pytest

from linkrelay.relay.html_rewriter import (
    is_relative_reference,
    rewrite_html,
    rewrite_html_text,
)

ORIGIN = "http://a.example/page"


def test_root_relative_src_is_resolved_and_base_injected():
    html = b'<html><head><title>x</title></head><body><img src="/img.png"></body></html>'
    result = rewrite_html(html, ORIGIN).decode("utf-8")

    assert 'src="http://a.example/img.png"' in result
    assert result.count("<base ") == 1
    assert '<head><base href="http://a.example/page">' in result


@pytest.mark.parametrize(
    "value,expected",
    [
        ("img.png", "http://a.example/img.png"),
        ("../up/style.css", "http://a.example/up/style.css"),
        ("?page=2", "http://a.example/page?page=2"),
        ("sub/index.html#top", "http://a.example/sub/index.html#top"),
    ],
)
def test_document_relative_values(value, expected):
    result = rewrite_html_text(f'<a href="{value}">x</a>', ORIGIN)
    assert f'href="{expected}"' in result


@pytest.mark.parametrize(
    "value",
    [
        "https://other.example/x.js",
        "http://a.example/same-origin.js",
        "//cdn.example/lib.js",
        "data:image/png;base64,AAAA",
        "javascript:void(0)",
        "#section",
        "mailto:someone@example.com",
    ],
)
def test_non_relative_values_are_untouched(value):
    markup = f'<script src="{value}"></script>'
    result = rewrite_html_text(markup, ORIGIN)
    assert markup in result


def test_single_quotes_and_case_insensitive_attributes():
    result = rewrite_html_text("<LINK HREF='/a.css'>", ORIGIN)
    assert "HREF='http://a.example/a.css'" in result


def test_data_attributes_are_left_alone():
    result = rewrite_html_text(
        '<img data-src="/lazy.png" src="/now.png"><a data-href="/x">x</a>', ORIGIN
    )
    assert 'data-src="/lazy.png"' in result
    assert 'data-href="/x"' in result
    assert ' src="http://a.example/now.png"' in result


def test_entities_in_values_are_preserved():
    result = rewrite_html_text('<a href="/search?a=1&amp;b=2">x</a>', ORIGIN)
    assert 'href="http://a.example/search?a=1&amp;b=2"' in result


def test_head_with_attributes():
    result = rewrite_html_text('<html><head lang="en"><meta charset="utf-8"></head></html>', ORIGIN)
    assert '<head lang="en"><base href="http://a.example/page">' in result


def test_header_element_is_not_mistaken_for_head():
    result = rewrite_html_text("<html><body><header>hi</header></body></html>", ORIGIN)
    assert result.startswith('<html><head><base href="http://a.example/page"></head><body>')


def test_fragment_without_html_element_gets_leading_base():
    result = rewrite_html_text("<p>hello</p>", ORIGIN)
    assert result == '<base href="http://a.example/page"><p>hello</p>'


def test_undecodable_body_is_returned_unmodified():
    body = b"\xff\xfe<html><head></head></html>"
    assert rewrite_html(body, ORIGIN, "utf-8") is body


def test_unknown_encoding_is_returned_unmodified():
    body = b"<html><head></head></html>"
    assert rewrite_html(body, ORIGIN, "no-such-codec") is body


def test_non_utf8_encoding_round_trips():
    body = '<html><head></head><body>caf\xe9 <img src="a.png"></body></html>'.encode("latin-1")
    result = rewrite_html(body, ORIGIN, "latin-1")
    assert 'caf\xe9'.encode("latin-1") in result
    assert b'src="http://a.example/a.png"' in result


def test_empty_body():
    assert rewrite_html(b"", ORIGIN) == b""


@pytest.mark.parametrize(
    "value,relative",
    [("a.png", True), ("/a.png", True), ("", False), ("#x", False), ("//h/x", False), ("https://h/x", False)],
)
def test_is_relative_reference(value, relative):
    assert is_relative_reference(value) is relative
