"""
Shared pytest fixtures for the TeamTime client test suite.

Provides:
    - http: MagicMock standing in for the gateway's requests.Session (autouse,
      so no test can reach the network)
    - make_response: build a fake requests.Response
    - ok / fail: build backend envelopes {success, data, message}
    - xlsx_file: write a real workbook into tmp_path with openpyxl
"""

import json
from unittest.mock import MagicMock

import pytest
from openpyxl import Workbook

import teamtime.integrations.api_gateway as gw_module
from teamtime.services.staging_service import transfer_guard

TEST_BASE_URL = "http://testserver/api"


def _response(status: int = 200, body=None, *, content: bytes | None = None, text: str | None = None):
    """Fake requests.Response with just what ApiGateway reads."""
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 400
    if content is not None:
        resp.content = content
        resp.text = text or ""
        resp.json.side_effect = ValueError("not json")
    elif body is None:
        resp.content = b""
        resp.text = text or ""
        resp.json.side_effect = ValueError("empty body")
    else:
        raw = json.dumps(body)
        resp.content = raw.encode("utf-8")
        resp.text = raw
        resp.json.return_value = body
    return resp


# ── Gateway isolation ────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def http():
    """Inject a mock session into the api_gateway singleton for every test."""
    gw = gw_module.api_gateway
    saved = (
        gw._session, gw.base_url, gw.timeout, gw.upload_timeout,
        gw.token_provider, gw.on_unauthorized,
    )
    session = MagicMock()
    gw._session = session
    gw.base_url = TEST_BASE_URL
    gw.timeout = 30
    gw.upload_timeout = 300
    gw.token_provider = None
    gw.on_unauthorized = None
    yield session
    (
        gw._session, gw.base_url, gw.timeout, gw.upload_timeout,
        gw.token_provider, gw.on_unauthorized,
    ) = saved


@pytest.fixture(autouse=True)
def _reset_transfer_guard():
    transfer_guard.clear()
    yield
    transfer_guard.clear()


# ── Response factories ───────────────────────────────────────────────────


@pytest.fixture
def make_response():
    return _response


@pytest.fixture
def ok():
    """ok(data) → 200 response carrying the standard success envelope."""

    def _ok(data=None, message="OK", status=200):
        return _response(status, {"success": True, "data": data, "message": message})

    return _ok


@pytest.fixture
def fail():
    """fail(status, message) → error response with the backend's envelope."""

    def _fail(status, message="Error", **extra):
        return _response(status, {"success": False, "message": message, **extra})

    return _fail


# ── Files ────────────────────────────────────────────────────────────────


@pytest.fixture
def xlsx_file(tmp_path):
    """xlsx_file(headers, rows, name) → path of a real .xlsx workbook."""

    def _make(headers, rows=(), name="projects.xlsx"):
        wb = Workbook()
        ws = wb.active
        ws.title = "Proyectos"
        ws.append(list(headers))
        for row in rows:
            ws.append(list(row))
        path = tmp_path / name
        wb.save(path)
        return str(path)

    return _make
