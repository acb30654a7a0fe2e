from urllib.parse import unquote

import pytest

from linkrelay.links import LinkValidationError, issue_link, resolve_base_url
from linkrelay.links.issuer import format_expires_at

NOW = 1_700_000_000
BASE = "https://relay.example.com"


class TestValidation:
    @pytest.mark.parametrize("ttl", [0, -5, 31536001])
    def test_out_of_range_ttl_rejected(self, codec, ttl):
        with pytest.raises(LinkValidationError):
            issue_link(codec, "https://example.com", ttl, BASE, now=NOW)

    def test_max_ttl_accepted(self, codec):
        link = issue_link(codec, "https://example.com", 31536000, BASE, now=NOW)
        assert link.exp == NOW + 31536000

    @pytest.mark.parametrize("ttl", [True, 1.5, "60"])
    def test_non_integer_ttl_rejected(self, codec, ttl):
        with pytest.raises(LinkValidationError):
            issue_link(codec, "https://example.com", ttl, BASE, now=NOW)

    @pytest.mark.parametrize(
        "url",
        ["", "   ", "example.com", "/relative/path", "ftp://example.com/file", "https://"],
    )
    def test_non_absolute_url_rejected(self, codec, url):
        with pytest.raises(LinkValidationError) as exc_info:
            issue_link(codec, url, 60, BASE, now=NOW)
        assert exc_info.value.message


class TestIssue:
    def test_payload_and_address(self, codec):
        link = issue_link(codec, "https://example.com", 3600, BASE, now=NOW)

        assert link.exp == NOW + 3600
        assert link.original_url == "https://example.com"
        assert link.expiry_seconds == 3600
        assert link.short_url.startswith(f"{BASE}/r/")

        escaped = link.short_url[len(f"{BASE}/r/"):]
        assert ":" not in escaped
        assert unquote(escaped) == link.token

        payload = codec.decrypt(link.token)
        assert payload.url == "https://example.com"
        assert payload.exp == NOW + 3600

    def test_expires_at_format(self, codec):
        link = issue_link(codec, "https://example.com", 60, BASE, now=NOW)
        assert link.expires_at == "2023-11-14T22:14:20.000Z"
        assert format_expires_at(0) == "1970-01-01T00:00:00.000Z"

    def test_base_trailing_slash_is_not_doubled(self, codec):
        link = issue_link(codec, "https://example.com", 60, BASE + "/", now=NOW)
        assert link.short_url.startswith(f"{BASE}/r/")


class TestResolveBaseUrl:
    def test_direct_host(self):
        headers = {"host": "localhost:5000"}
        assert (
            resolve_base_url(headers, "http", "127.0.0.1:5000", public_url="")
            == "http://localhost:5000"
        )

    def test_forwarded_headers_win(self):
        headers = {
            "host": "internal:5000",
            "x-forwarded-proto": "https, http",
            "x-forwarded-host": "links.example.org, internal",
        }
        assert (
            resolve_base_url(headers, "http", "internal:5000", public_url="")
            == "https://links.example.org"
        )

    def test_falls_back_to_connection_netloc(self):
        assert (
            resolve_base_url({}, "http", "10.0.0.1:8080", public_url="")
            == "http://10.0.0.1:8080"
        )

    def test_public_url_overrides(self):
        headers = {"x-forwarded-host": "ignored.example"}
        assert (
            resolve_base_url(headers, "http", "x", public_url="https://go.example/")
            == "https://go.example"
        )
