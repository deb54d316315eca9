from __future__ import annotations

import json
from http import HTTPStatus
from http.cookies import SimpleCookie
from pathlib import Path
from urllib.parse import urlencode

import pytest

from frontend.app import SESSION_COOKIE, Request, create_app

from conftest import SIGNATURE


class FrontendClient:
    def __init__(self, app):
        self.app = app
        self.cookies: dict[str, str] = {}

    def request(
        self,
        method: str,
        path: str,
        *,
        data: dict[str, str] | None = None,
        follow_redirects: bool = False,
    ):
        headers: dict[str, str] = {}
        if self.cookies:
            headers["Cookie"] = "; ".join(f"{name}={value}" for name, value in self.cookies.items())
        body = b""
        if data is not None:
            body = urlencode(data, doseq=True).encode("utf-8")
            headers["Content-Type"] = "application/x-www-form-urlencoded"
        request = Request(method=method, target=path, headers=headers, body=body)
        response = self.app.handle(request)
        for name, value in response.headers:
            if name.lower() == "set-cookie":
                cookie = SimpleCookie()
                cookie.load(value)
                for key in cookie:
                    self.cookies[key] = cookie[key].value
        if follow_redirects and 300 <= response.status.value < 400:
            location = dict(response.headers).get("Location")
            if location:
                return self.request("GET", location, follow_redirects=True)
        return response

    def get(self, path: str, **kwargs):
        return self.request("GET", path, **kwargs)

    def post(self, path: str, data: dict[str, str] | None = None, **kwargs):
        return self.request("POST", path, data=data or {}, **kwargs)


@pytest.fixture
def app(tmp_path: Path):
    return create_app(tmp_path / "frontend_test.db")


@pytest.fixture
def client(app):
    return FrontendClient(app)


def _body(response) -> str:
    return response.body if isinstance(response.body, str) else response.body.decode("utf-8")


def fill_inspection(client: FrontendClient, *, unit: str = "M-12", name: str = "J. Smith") -> None:
    client.post("/details", {"unit_number": unit, "inspector_name": name})
    client.post("/items/toggle", {"section_id": "general", "item_id": "general-0"})
    client.post("/signature", {"signature": SIGNATURE})


def test_home_page_starts_a_session(client: FrontendClient) -> None:
    response = client.get("/")
    assert response.status == HTTPStatus.OK
    assert SESSION_COOKIE in client.cookies
    body = _body(response)
    assert "Current State Inspection" in body
    assert 'title="Please enter your name" disabled' in body

    again = client.get("/")
    set_cookies = [value for name, value in again.headers if name.lower() == "set-cookie"]
    assert set_cookies == []


def test_sign_off_section_renders_without_checkboxes(client: FrontendClient) -> None:
    body = _body(client.get("/"))
    assert 'value="general-0"' in body
    assert 'value="sign-off-0"' not in body
    assert 'id="section-sign-off"' not in body
    assert 'id="signature-canvas"' in body


def test_read_only_requests_do_not_open_sessions(app) -> None:
    client = FrontendClient(app)
    for _ in range(50):
        state = json.loads(_body(client.get("/timer")))
    assert state == {"state": "idle", "elapsed": 0, "display": "00:00:00"}
    client.get("/history")
    client.get("/export.json")
    assert len(app.sessions) == 0
    assert client.cookies == {}


def test_session_table_is_bounded(tmp_path: Path) -> None:
    app = create_app(tmp_path / "bounded.db", max_sessions=3)
    clients = [FrontendClient(app) for _ in range(5)]
    for client in clients:
        client.get("/")
    assert len(app.sessions) == 3
    assert clients[0].cookies[SESSION_COOKIE] not in app.sessions
    assert clients[-1].cookies[SESSION_COOKIE] in app.sessions

    clients[2].post("/details", {"unit_number": "M-21", "inspector_name": "R. Nguyen"})
    FrontendClient(app).get("/")
    assert clients[2].cookies[SESSION_COOKIE] in app.sessions
    assert clients[3].cookies[SESSION_COOKIE] not in app.sessions

    stale = clients[0].cookies[SESSION_COOKIE]
    clients[0].get("/")
    assert clients[0].cookies[SESSION_COOKIE] != stale
    assert len(app.sessions) == 3


def test_sessions_are_independent(app) -> None:
    first = FrontendClient(app)
    second = FrontendClient(app)
    first.post("/details", {"unit_number": "M-12", "inspector_name": "J. Smith"})
    assert 'value="M-12"' in _body(first.get("/"))
    assert 'value="M-12"' not in _body(second.get("/"))


def test_save_flow(app, client: FrontendClient) -> None:
    fill_inspection(client)
    body = _body(client.get("/"))
    assert "1 of" in body
    assert 'title="Save inspection">' in body

    response = client.post("/save", follow_redirects=True)
    assert "Inspection for Unit M-12 saved successfully!" in _body(response)
    [entry] = app.service.list_inspections()
    assert entry.unit_number == "M-12"
    assert entry.signature == SIGNATURE

    history = _body(client.get("/history"))
    assert "M-12" in history
    assert "J. Smith" in history


def test_save_reports_first_missing_requirement(client: FrontendClient) -> None:
    response = client.post("/save", follow_redirects=True)
    assert "Error: Please enter your name" in _body(response)

    client.post("/details", {"unit_number": "", "inspector_name": "J. Smith"})
    response = client.post("/save", follow_redirects=True)
    assert "Error: Please enter the unit number" in _body(response)


def test_invalid_signature_is_rejected(client: FrontendClient) -> None:
    response = client.post("/signature", {"signature": "not-an-image"}, follow_redirects=True)
    assert "Signature must be a base64 encoded image data URI" in _body(response)

    client.post("/signature", {"signature": SIGNATURE})
    assert SIGNATURE in _body(client.get("/"))
    client.post("/signature/clear")
    assert "No signature provided" in _body(client.get("/"))


def test_timer_endpoints(client: FrontendClient) -> None:
    state = json.loads(_body(client.get("/timer")))
    assert state == {"state": "idle", "elapsed": 0, "display": "00:00:00"}

    client.post("/timer/start")
    assert json.loads(_body(client.get("/timer")))["state"] == "running"
    client.post("/timer/pause")
    assert json.loads(_body(client.get("/timer")))["state"] == "paused"


def test_delete_requires_confirmation(app, client: FrontendClient) -> None:
    fill_inspection(client)
    client.post("/save")
    [entry] = app.service.list_inspections()

    client.post(f"/history/{entry.id}/delete")
    assert len(app.service.list_inspections()) == 1

    response = client.post(f"/history/{entry.id}/delete", {"confirm": "yes"}, follow_redirects=True)
    assert "Inspection deleted." in _body(response)
    assert app.service.list_inspections() == []
    assert "No saved inspections found." in _body(response)


def test_load_inspection_for_editing(app, client: FrontendClient) -> None:
    fill_inspection(client, unit="R-3")
    client.post("/save")
    [entry] = app.service.list_inspections()

    client.post(f"/history/{entry.id}/load")
    assert 'value="R-3"' not in _body(client.get("/"))

    response = client.post(f"/history/{entry.id}/load", {"confirm": "yes"}, follow_redirects=True)
    body = _body(response)
    assert "Loaded inspection for R-3" in body
    assert 'value="R-3"' in body

    response = client.post("/history/id_missing/load", {"confirm": "yes"}, follow_redirects=True)
    assert "Inspection not found" in _body(response)


def test_new_inspection_requires_confirmation(client: FrontendClient) -> None:
    client.post("/details", {"unit_number": "M-30", "inspector_name": "K. Brooks"})
    client.post("/new")
    assert 'value="M-30"' in _body(client.get("/"))
    client.post("/new", {"confirm": "yes"})
    assert 'value="M-30"' not in _body(client.get("/"))


def test_history_detail_page(app, client: FrontendClient) -> None:
    fill_inspection(client)
    client.post("/save")
    [entry] = app.service.list_inspections()

    body = _body(client.get(f"/history/{entry.id}"))
    assert "Inspection for M-12" in body
    assert "Completed Items (1)" in body
    assert client.get("/history/id_missing").status == HTTPStatus.NOT_FOUND


def test_exports_and_import(app, client: FrontendClient, tmp_path: Path) -> None:
    fill_inspection(client)
    client.post("/save")

    workbook = client.get("/export.xlsx")
    headers = dict(workbook.headers)
    assert headers["Content-Type"].startswith("application/vnd.openxmlformats")
    assert headers["Content-Disposition"].startswith('attachment; filename="truck-check-export-')
    assert workbook.body[:2] == b"PK"

    exported = _body(client.get("/export.json"))
    other = create_app(tmp_path / "other.db")
    other_client = FrontendClient(other)
    response = other_client.post("/import", {"payload": exported}, follow_redirects=True)
    assert "Imported 1 inspections." in _body(response)
    assert len(other.service.list_inspections()) == 1

    response = other_client.post("/import", {"payload": "not json"}, follow_redirects=True)
    assert "Import data is not valid JSON" in _body(response)


def test_reset_storage_requires_confirmation(app, client: FrontendClient) -> None:
    fill_inspection(client)
    client.post("/save")
    client.post("/storage/reset")
    assert len(app.service.list_inspections()) == 1
    client.post("/storage/reset", {"confirm": "yes"})
    assert app.service.list_inspections() == []


def test_unexpected_errors_render_generic_page(app, client: FrontendClient, monkeypatch) -> None:
    def explode(request):
        raise RuntimeError("boom")

    monkeypatch.setattr(app, "_history", explode)
    response = client.get("/history")
    assert response.status == HTTPStatus.INTERNAL_SERVER_ERROR
    body = _body(response)
    assert "Something went wrong" in body
    assert "boom" not in body


def test_static_files_and_unknown_routes(client: FrontendClient) -> None:
    response = client.get("/static/styles.css")
    assert response.status == HTTPStatus.OK
    assert dict(response.headers)["Content-Type"].startswith("text/css")
    assert client.get("/static/../app.py").status == HTTPStatus.NOT_FOUND
    assert client.get("/nowhere").status == HTTPStatus.NOT_FOUND
