"""Shared fixtures for blocklist_baker tests."""

# pylint: disable=missing-function-docstring
from types import SimpleNamespace

import requests
from pytest import fixture


class FakeResponse:
    """Minimal stand-in for requests.Response used as a context manager."""

    def __init__(self, status_code=200, text=""):
        self.status_code = status_code
        self.text = text

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


@fixture
def web(monkeypatch):
    """Patch requests.get to serve canned responses.

    Populate ``web.responses`` with URL -> FakeResponse or exception. Unknown
    URLs behave like a refused connection. Requested URLs are recorded in
    ``web.requested``.
    """
    state = SimpleNamespace(responses={}, requested=[])

    def fake_get(url):
        state.requested.append(url)
        outcome = state.responses.get(
            url, requests.exceptions.ConnectionError("Connection refused")
        )
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    monkeypatch.setattr(requests, "get", fake_get)
    return state
