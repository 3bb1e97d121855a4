"""Tests for the HTTP fetcher and the blocklist writer."""

# pylint: disable=missing-function-docstring
import requests
from pytest import raises

from blocklist_baker.baker import FetchError, OutputError, fetch, write_blocklist

from .conftest import FakeResponse


def test_fetch_returns_body(web):
    web.responses["https://a.example/hosts"] = FakeResponse(200, "0.0.0.0 a.example\n")

    assert fetch("https://a.example/hosts") == "0.0.0.0 a.example\n"
    assert web.requested == ["https://a.example/hosts"]


def test_fetch_non_success_status_raises(web):
    web.responses["https://a.example/missing"] = FakeResponse(404, "not found")

    with raises(FetchError) as excinfo:
        fetch("https://a.example/missing")

    assert excinfo.value.url == "https://a.example/missing"
    assert "404" in str(excinfo.value)


def test_fetch_transport_error_raises(web):
    with raises(FetchError) as excinfo:
        fetch("https://down.example/hosts")

    assert isinstance(excinfo.value.cause, requests.exceptions.ConnectionError)
    assert "https://down.example/hosts" in str(excinfo.value)


def test_write_blocklist_hosts_format(tmp_path):
    out = tmp_path / "blocklist.txt"

    count = write_blocklist(str(out), {"b.example", "a.example"})

    assert count == 2
    lines = out.read_text(encoding="utf-8").splitlines()
    assert sorted(lines) == ["0.0.0.0 a.example", "0.0.0.0 b.example"]


def test_write_blocklist_sorted_and_creates_parent(tmp_path):
    out = tmp_path / "nested" / "blocklist.txt"

    write_blocklist(str(out), {"c.example", "a.example", "b.example"}, sort_output=True)

    assert out.read_text(encoding="utf-8") == (
        "0.0.0.0 a.example\n0.0.0.0 b.example\n0.0.0.0 c.example\n"
    )


def test_write_blocklist_truncates_existing_file(tmp_path):
    out = tmp_path / "blocklist.txt"
    out.write_text("0.0.0.0 stale.example\n", encoding="utf-8")

    assert write_blocklist(str(out), set()) == 0
    assert out.read_text(encoding="utf-8") == ""


def test_write_blocklist_unwritable_path_is_output_error(tmp_path):
    with raises(OutputError):
        write_blocklist(str(tmp_path), {"a.example"})
