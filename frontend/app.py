from __future__ import annotations

import html
import json
import logging
import mimetypes
import secrets
from collections import OrderedDict
from dataclasses import dataclass, field
from http import HTTPStatus
from http.cookies import SimpleCookie
from pathlib import Path
from typing import Any, Callable, Iterable, Optional
from urllib.parse import parse_qs, quote, urlparse

from backend.app.app import TruckCheckApp
from backend.app.catalog import sign_off_ids
from backend.app.inspection import checklist_sections, completed_count, format_duration, parse_timestamp, total_count
from backend.app.models import HistoryEntry, InspectionSection, PersistedInspection
from backend.app.reconcile import checklist_items
from backend.app.session import InspectionSession, ValidationError
from backend.app.timer import InspectionTimer

logger = logging.getLogger(__name__)

SESSION_COOKIE = "truck_check_session"
MAX_SESSIONS = 500
GENERIC_ERROR = "An unexpected error occurred. Please refresh the page and try again."


@dataclass
class Request:
    method: str
    target: str
    headers: dict[str, str]
    body: bytes = b""

    def __post_init__(self) -> None:
        parsed = urlparse(self.target)
        self.path = parsed.path or "/"
        self.query = parse_qs(parsed.query)
        self.form: dict[str, list[str]] = {}
        self.session_id: Optional[str] = None
        if self.method in {"POST", "PUT"}:
            content_type = self.headers.get("Content-Type", "")
            if "application/x-www-form-urlencoded" in content_type:
                self.form = parse_qs(self.body.decode("utf-8"), keep_blank_values=True)
        cookie_header = self.headers.get("Cookie", "")
        cookie = SimpleCookie(cookie_header)
        self.cookies = {key: morsel.value for key, morsel in cookie.items()}

    def form_value(self, name: str, default: Optional[str] = None) -> Optional[str]:
        values = self.form.get(name)
        return values[0] if values else default

    def confirmed(self) -> bool:
        return (self.form_value("confirm") or "").lower() in {"yes", "true", "1", "on"}

    def cookie(self, name: str) -> Optional[str]:
        return self.cookies.get(name)


@dataclass
class Response:
    status: int = HTTPStatus.OK
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: bytes | str = ""

    def set_cookie(self, name: str, value: str, *, path: str = "/", max_age: Optional[int] = None) -> None:
        cookie = SimpleCookie()
        cookie[name] = value
        cookie[name]["path"] = path
        if max_age is not None:
            cookie[name]["max-age"] = str(max_age)
        header_value = cookie.output(header="")
        self.headers.append(("Set-Cookie", header_value.strip()))

    def add_header(self, name: str, value: str) -> None:
        self.headers.append((name, value))


class TruckCheckWebApp:
    def __init__(self, storage_path: Path, *, max_sessions: int = MAX_SESSIONS) -> None:
        self.service = TruckCheckApp.create(storage_path)
        self.max_sessions = max_sessions
        self.sessions: OrderedDict[str, InspectionSession] = OrderedDict()
        self.flash_messages: dict[str, list[tuple[str, str]]] = {}
        self.static_dir = Path(__file__).parent / "static"

    # Public API -----------------------------------------------------------------
    def wsgi_app(self, environ: dict[str, Any], start_response: Callable) -> Iterable[bytes]:
        method = environ["REQUEST_METHOD"]
        target = environ.get("RAW_URI") or environ.get("PATH_INFO", "/")
        if environ.get("QUERY_STRING") and "?" not in target:
            target = f"{target}?{environ['QUERY_STRING']}"
        length = int(environ.get("CONTENT_LENGTH") or 0)
        body = environ["wsgi.input"].read(length) if length else b""
        headers = {key: value for key, value in environ.items() if key.startswith("HTTP_")}
        if "CONTENT_TYPE" in environ:
            headers["Content-Type"] = environ["CONTENT_TYPE"]
        if "HTTP_COOKIE" in environ:
            headers["Cookie"] = environ["HTTP_COOKIE"]
        request = Request(method=method, target=target, headers=headers, body=body)
        response = self.handle(request)
        start_response(f"{response.status.value} {response.status.phrase}", response.headers)
        body = response.body if isinstance(response.body, bytes) else response.body.encode("utf-8")
        return [body]

    def handle(self, request: Request) -> Response:
        if request.method == "GET" and request.path.startswith("/static/"):
            filename = request.path.split("/", 2)[-1]
            return self._serve_static(filename)

        route = self._match_route(request)
        if not route:
            return self._not_found()
        created = self._attach_session(request)
        handler, params = route
        try:
            response = handler(request, **params)
        except Exception:
            logger.exception("Unhandled error while serving %s %s", request.method, request.path)
            response = self._error_page()
        if created:
            response.set_cookie(SESSION_COOKIE, request.session_id, path="/")
        if not any(name.lower() == "content-type" for name, _ in response.headers):
            response.add_header("Content-Type", "text/html; charset=utf-8")
        if isinstance(response.body, str) and "<!--FLASH-->" in response.body:
            messages = self._consume_messages(request)
            response.body = response.body.replace("<!--FLASH-->", self._render_messages(messages))
        return response

    def run(self, host: str = "127.0.0.1", port: int = 8000) -> None:
        from wsgiref.simple_server import make_server

        with make_server(host, port, self.wsgi_app) as httpd:
            print(f"Serving on http://{host}:{port}")
            httpd.serve_forever()

    # Routing --------------------------------------------------------------------
    def _match_route(self, request: Request) -> Optional[tuple[Callable, dict[str, Any]]]:
        simple_routes: dict[tuple[str, str], Callable[[Request], Response]] = {
            ("GET", "/"): self._home,
            ("POST", "/details"): self._update_details,
            ("POST", "/items/toggle"): self._toggle_item,
            ("POST", "/signature"): self._set_signature,
            ("POST", "/signature/clear"): self._clear_signature,
            ("GET", "/timer"): self._timer_state,
            ("POST", "/timer/start"): self._timer_start,
            ("POST", "/timer/pause"): self._timer_pause,
            ("POST", "/save"): self._save,
            ("POST", "/new"): self._new_inspection,
            ("GET", "/history"): self._history,
            ("GET", "/export.xlsx"): self._export_workbook,
            ("GET", "/export.json"): self._export_json,
            ("POST", "/import"): self._import_json,
            ("POST", "/storage/reset"): self._reset_storage,
        }
        handler = simple_routes.get((request.method, request.path))
        if handler:
            return handler, {}

        if request.path.startswith("/history/"):
            parts = request.path.strip("/").split("/")
            if len(parts) == 2 and request.method == "GET":
                return self._history_detail, {"inspection_id": parts[1]}
            if len(parts) == 3 and request.method == "POST":
                if parts[2] == "load":
                    return self._load_inspection, {"inspection_id": parts[1]}
                if parts[2] == "delete":
                    return self._delete_inspection, {"inspection_id": parts[1]}
        return None

    # Session helpers ------------------------------------------------------------
    def _attach_session(self, request: Request) -> bool:
        token = request.cookie(SESSION_COOKIE)
        if token and token in self.sessions:
            self.sessions.move_to_end(token)
            request.session_id = token
            return False
        if request.method == "GET" and request.path != "/":
            return False
        token = secrets.token_urlsafe(24)
        self.sessions[token] = self.service.new_session()
        request.session_id = token
        while len(self.sessions) > self.max_sessions:
            evicted, _ = self.sessions.popitem(last=False)
            self.flash_messages.pop(evicted, None)
            logger.info("Evicted idle inspection session (%d held)", len(self.sessions))
        return True

    def _session(self, request: Request) -> InspectionSession:
        return self.sessions[request.session_id]

    def _flash(self, request: Request, category: str, message: str) -> None:
        if request.session_id is not None:
            self.flash_messages.setdefault(request.session_id, []).append((category, message))

    def _consume_messages(self, request: Request) -> list[tuple[str, str]]:
        if request.session_id is None:
            return []
        return self.flash_messages.pop(request.session_id, [])

    # Route handlers -------------------------------------------------------------
    def _home(self, request: Request) -> Response:
        session = self._session(request)
        return self._page("Truck Check", self._render_form(session))

    def _update_details(self, request: Request) -> Response:
        session = self._session(request)
        session.update_details(
            unit_number=request.form_value("unit_number"),
            inspector_name=request.form_value("inspector_name"),
        )
        return self._redirect("/")

    def _toggle_item(self, request: Request) -> Response:
        session = self._session(request)
        section_id = request.form_value("section_id") or ""
        item_id = request.form_value("item_id") or ""
        completed = request.form_value("completed")
        if completed is None:
            session.toggle_item(section_id, item_id)
        else:
            session.set_item_completed(section_id, item_id, completed.lower() in {"yes", "true", "1", "on"})
        return self._redirect(f"/#section-{quote(section_id)}")

    def _set_signature(self, request: Request) -> Response:
        session = self._session(request)
        try:
            session.set_signature(request.form_value("signature") or "")
        except ValueError as exc:
            self._flash(request, "error", str(exc))
        return self._redirect("/#signature")

    def _clear_signature(self, request: Request) -> Response:
        self._session(request).clear_signature()
        return self._redirect("/#signature")

    def _timer_state(self, request: Request) -> Response:
        if request.session_id is None:
            timer = InspectionTimer()
        else:
            timer = self._session(request).timer
        return self._json(
            {"state": timer.state.value, "elapsed": timer.elapsed_seconds, "display": timer.display}
        )

    def _timer_start(self, request: Request) -> Response:
        self._session(request).timer.start(force=True)
        return self._redirect("/")

    def _timer_pause(self, request: Request) -> Response:
        self._session(request).timer.pause()
        return self._redirect("/")

    def _save(self, request: Request) -> Response:
        session = self._session(request)
        try:
            entry = session.save()
        except ValidationError as exc:
            self._flash(request, "error", f"Error: {exc}")
            return self._redirect("/")
        self._flash(request, "success", f"Inspection for Unit {entry.unit_number} saved successfully!")
        return self._redirect("/")

    def _new_inspection(self, request: Request) -> Response:
        if self._session(request).new_inspection(confirmed=request.confirmed()):
            self._flash(request, "info", "Started a new inspection.")
        return self._redirect("/")

    def _history(self, request: Request) -> Response:
        entries = self.service.history()
        return self._page("Saved inspections", self._render_history(entries))

    def _history_detail(self, request: Request, *, inspection_id: str) -> Response:
        try:
            entry = self.service.get_inspection(inspection_id)
        except LookupError:
            return self._not_found()
        return self._page(f"Inspection for {entry.unit_number or 'Unknown Unit'}", self._render_detail(entry))

    def _load_inspection(self, request: Request, *, inspection_id: str) -> Response:
        session = self._session(request)
        try:
            loaded = session.load(inspection_id, confirmed=request.confirmed())
        except LookupError as exc:
            self._flash(request, "error", str(exc))
            return self._redirect("/history")
        if not loaded:
            return self._redirect("/history")
        unit = session.record.unit_number
        self._flash(request, "success", f"Loaded inspection for {unit}" if unit else "Inspection loaded successfully")
        return self._redirect("/")

    def _delete_inspection(self, request: Request, *, inspection_id: str) -> Response:
        session = self._session(request)
        if not request.confirmed():
            return self._redirect("/history")
        if session.delete(inspection_id, confirmed=True):
            self._flash(request, "success", "Inspection deleted.")
        else:
            self._flash(request, "error", "Inspection not found.")
        return self._redirect("/history")

    def _export_workbook(self, request: Request) -> Response:
        filename, payload = self.service.export_workbook()
        return Response(
            headers=[
                ("Content-Type", "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"),
                ("Content-Disposition", f'attachment; filename="{filename}"'),
            ],
            body=payload,
        )

    def _export_json(self, request: Request) -> Response:
        return Response(
            headers=[
                ("Content-Type", "application/json; charset=utf-8"),
                ("Content-Disposition", 'attachment; filename="truck-check-inspections.json"'),
            ],
            body=self.service.export_json(),
        )

    def _import_json(self, request: Request) -> Response:
        try:
            added = self.service.import_json(request.form_value("payload") or "", replace=request.confirmed())
        except ValueError as exc:
            self._flash(request, "error", str(exc))
        else:
            self._flash(request, "success", f"Imported {added} inspections.")
        return self._redirect("/history")

    def _reset_storage(self, request: Request) -> Response:
        if self._session(request).reset_storage(confirmed=request.confirmed()):
            self._flash(request, "success", "Saved inspections have been cleared.")
        return self._redirect("/history")

    # Utility responses ----------------------------------------------------------
    def _page(self, title: str, content: str, *, status: int = HTTPStatus.OK) -> Response:
        body = f"""
        <!doctype html>
        <html lang=\"en\">
          <head>
            <meta charset=\"utf-8\" />
            <meta name=\"viewport\" content=\"width=device-width, initial-scale=1\" />
            <title>{html.escape(title)} - Truck Check</title>
            <link rel=\"stylesheet\" href=\"/static/styles.css\" />
            <script src=\"/static/app.js\" defer></script>
          </head>
          <body>
            <header class=\"top-bar\">
              <div class=\"brand\">Ambulance Truck Check</div>
              <nav class=\"nav-links\"><a href=\"/\">Inspection</a><a href=\"/history\">Saved inspections</a></nav>
            </header>
            <main class=\"content\">
              <!--FLASH-->
              {content}
            </main>
          </body>
        </html>
        """
        return Response(status=status, body=body)

    def _json(self, payload: dict[str, Any]) -> Response:
        return Response(headers=[("Content-Type", "application/json; charset=utf-8")], body=json.dumps(payload))

    def _redirect(self, location: str) -> Response:
        response = Response(status=HTTPStatus.SEE_OTHER)
        response.add_header("Location", location)
        response.body = f"<html><body>Redirecting to <a href=\"{html.escape(location)}\">{html.escape(location)}</a></body></html>"
        return response

    def _not_found(self) -> Response:
        body = "<html><body><h1>404 Not Found</h1></body></html>"
        return Response(status=HTTPStatus.NOT_FOUND, headers=[("Content-Type", "text/html; charset=utf-8")], body=body)

    def _error_page(self) -> Response:
        content = f'<section class="card narrow"><h1>Something went wrong</h1><p>{html.escape(GENERIC_ERROR)}</p></section>'
        return self._page("Error", content, status=HTTPStatus.INTERNAL_SERVER_ERROR)

    def _serve_static(self, filename: str) -> Response:
        static_root = self.static_dir.resolve()
        path = (self.static_dir / filename).resolve()
        try:
            path.relative_to(static_root)
        except ValueError:
            return self._not_found()
        if not path.exists() or not path.is_file():
            return self._not_found()
        content_type, _ = mimetypes.guess_type(str(path))
        content_type = content_type or "application/octet-stream"
        if content_type.startswith("text/") or content_type.endswith("javascript"):
            body = path.read_text(encoding="utf-8")
            return Response(headers=[("Content-Type", f"{content_type}; charset=utf-8")], body=body)
        return Response(headers=[("Content-Type", content_type)], body=path.read_bytes())

    # Rendering helpers ----------------------------------------------------------
    def _render_messages(self, messages: Iterable[tuple[str, str]]) -> str:
        items = [f'<li class="notification {html.escape(cat)}">{html.escape(msg)}</li>' for cat, msg in messages]
        if not items:
            return ""
        return '<ul class="notifications">' + "".join(items) + "</ul>"

    def _render_form(self, session: InspectionSession) -> str:
        record = session.record
        status = session.status()
        disabled = "" if status.saveable else " disabled"
        sections = "".join(
            self._render_section(section_id, section)
            for section_id, section in checklist_sections(record, session.catalog)
        )
        signature_preview = (
            f'<img src="{html.escape(record.signature_image)}" alt="Signature Preview" />'
            if record.signature_image
            else "<p>No signature provided</p>"
        )
        return f"""
        <section class=\"card inspection-header\">
          <form method=\"post\" action=\"/details\" class=\"form details-form\">
            <label for=\"unit-number\">Unit number</label>
            <input type=\"text\" id=\"unit-number\" name=\"unit_number\" value=\"{html.escape(record.unit_number)}\" />
            <label for=\"inspector-name\">Inspector name</label>
            <input type=\"text\" id=\"inspector-name\" name=\"inspector_name\" value=\"{html.escape(record.inspector_name)}\" />
            <button type=\"submit\" class=\"btn\">Update details</button>
          </form>
          <div class=\"timer-display\" data-state=\"{session.timer.state.value}\">
            <span id=\"inspection-timer\">{session.timer.display}</span>
            <form method=\"post\" action=\"/timer/start\"><button type=\"submit\" class=\"btn btn-sm\">Start</button></form>
            <form method=\"post\" action=\"/timer/pause\"><button type=\"submit\" class=\"btn btn-sm\">Pause</button></form>
          </div>
          <p class=\"progress\">{completed_count(record, session.catalog)} of {total_count(record, session.catalog)} items checked</p>
        </section>
        <section id=\"checklist-sections\">{sections}</section>
        <section class=\"card\" id=\"signature\">
          <h2>Signature</h2>
          <canvas id=\"signature-canvas\" width=\"600\" height=\"200\"></canvas>
          <form method=\"post\" action=\"/signature\" id=\"signature-form\">
            <input type=\"hidden\" name=\"signature\" id=\"signature-data\" />
            <button type=\"submit\" class=\"btn\">Use signature</button>
          </form>
          <form method=\"post\" action=\"/signature/clear\">
            <button type=\"submit\" class=\"btn btn-secondary\" id=\"clear-signature\">Clear signature</button>
          </form>
          <div id=\"signature-preview\">{signature_preview}</div>
        </section>
        <section class=\"card actions\">
          <form method=\"post\" action=\"/save\">
            <button type=\"submit\" id=\"save-btn\" class=\"btn btn-primary\" title=\"{html.escape(status.message)}\"{disabled}>Save inspection</button>
          </form>
          <form method=\"post\" action=\"/new\" data-confirm=\"Are you sure you want to start a new inspection? All unsaved changes will be lost.\">
            <input type=\"hidden\" name=\"confirm\" value=\"yes\" />
            <button type=\"submit\" id=\"new-inspection-btn\" class=\"btn btn-secondary\">New inspection</button>
          </form>
          <a class=\"btn\" href=\"/export.xlsx\">Export history</a>
        </section>
        """

    def _render_section(self, section_id: str, section: InspectionSection) -> str:
        done = sum(1 for item in section.items if item.completed)
        header_class = "checklist-section-header all-completed" if section.items and done == len(section.items) else "checklist-section-header"
        items = []
        for item in section.items:
            item_class = "checklist-item completed" if item.completed else "checklist-item"
            mark = "&#9745;" if item.completed else "&#9744;"
            items.append(
                f"""
                <li class=\"{item_class}\" data-item-id=\"{html.escape(item.id)}\">
                  <form method=\"post\" action=\"/items/toggle\">
                    <input type=\"hidden\" name=\"section_id\" value=\"{html.escape(section_id)}\" />
                    <input type=\"hidden\" name=\"item_id\" value=\"{html.escape(item.id)}\" />
                    <button type=\"submit\" class=\"item-toggle\">{mark} <label>{html.escape(item.text)}</label></button>
                  </form>
                </li>
                """
            )
        return f"""
        <div class=\"checklist-section card\" id=\"section-{html.escape(section_id)}\" data-section-id=\"{html.escape(section_id)}\">
          <h2 class=\"{header_class}\">{html.escape(section.title)} <small>{done}/{len(section.items)}</small></h2>
          <ul class=\"checklist-items\">{''.join(items)}</ul>
        </div>
        """

    def _render_history(self, entries: list[HistoryEntry]) -> str:
        if not entries:
            cards = "<p>No saved inspections found.</p>"
        else:
            cards = "".join(self._render_history_card(entry) for entry in entries)
        return f"""
        <section class=\"card\">
          <h1>Saved inspections</h1>
          <div id=\"saved-checks-list\">{cards}</div>
        </section>
        <section class=\"card\">
          <h2>Import or export</h2>
          <a class=\"btn\" href=\"/export.xlsx\">Download workbook</a>
          <a class=\"btn\" href=\"/export.json\">Download JSON</a>
          <form method=\"post\" action=\"/import\" class=\"form\">
            <label for=\"payload\">Inspections JSON</label>
            <textarea id=\"payload\" name=\"payload\" rows=\"4\"></textarea>
            <button type=\"submit\" class=\"btn\">Import</button>
          </form>
          <form method=\"post\" action=\"/storage/reset\" data-confirm=\"WARNING: This will clear all saved data. Are you sure?\">
            <input type=\"hidden\" name=\"confirm\" value=\"yes\" />
            <button type=\"submit\" class=\"btn btn-danger\">Clear saved inspections</button>
          </form>
        </section>
        """

    def _render_history_card(self, entry: HistoryEntry) -> str:
        entry_id = html.escape(entry.id)
        duration = (
            f'<div class="saved-check-duration">{format_duration(entry.duration)}</div>' if entry.duration else ""
        )
        return f"""
        <div class=\"saved-check\">
          <div class=\"saved-check-header\">
            <h3><a href=\"/history/{entry_id}\">{html.escape(entry.unit_number or 'Unnamed Unit')}</a></h3>
            <div class=\"saved-check-meta\">
              <span class=\"saved-check-date\">{html.escape(_format_date(entry.date))}</span>
              <span>{html.escape(entry.inspector_name)}</span>
              <span>{entry.completed_items}/{entry.total_items} items</span>
              {duration}
            </div>
          </div>
          <div class=\"saved-check-actions\">
            <form method=\"post\" action=\"/history/{entry_id}/load\" data-confirm=\"Load this inspection for editing? This will replace your current inspection.\">
              <input type=\"hidden\" name=\"confirm\" value=\"yes\" />
              <button type=\"submit\" class=\"btn btn-sm btn-primary\">Load/Edit</button>
            </form>
            <form method=\"post\" action=\"/history/{entry_id}/delete\" data-confirm=\"Are you sure you want to delete this inspection? This action cannot be undone.\">
              <input type=\"hidden\" name=\"confirm\" value=\"yes\" />
              <button type=\"submit\" class=\"btn btn-sm btn-danger\">Delete</button>
            </form>
          </div>
        </div>
        """

    def _render_detail(self, entry: PersistedInspection) -> str:
        items = checklist_items(entry.checklist, skip_sections=sign_off_ids(self.service.catalog))
        completed = [item for item in items if item.completed]
        incomplete = [item for item in items if not item.completed]

        def render_list(values: list) -> str:
            if not values:
                return "<p>None</p>"
            return "<ul>" + "".join(f"<li>{html.escape(item.text or 'Untitled Item')}</li>" for item in values) + "</ul>"

        duration = f"<p><strong>Duration:</strong> {format_duration(entry.duration)}</p>" if entry.duration else ""
        signature = (
            f'<img src="{html.escape(entry.signature)}" alt="Inspector signature" />' if entry.signature else "<p>Not signed</p>"
        )
        return f"""
        <section class=\"card\">
          <h1>Inspection for {html.escape(entry.unit_number or 'Unknown Unit')}</h1>
          <div class=\"inspection-details\">
            <p><strong>Date:</strong> {html.escape(_format_date(entry.date))}</p>
            <p><strong>Inspector:</strong> {html.escape(entry.inspector_name or '')}</p>
            {duration}
          </div>
          <h2>Completed Items ({len(completed)})</h2>
          {render_list(completed)}
          <h2>Incomplete Items ({len(incomplete)})</h2>
          {render_list(incomplete)}
          <h2>Signature</h2>
          {signature}
        </section>
        """


def _format_date(value: Optional[str]) -> str:
    parsed = parse_timestamp(value) if value else None
    if parsed is None:
        return "Unknown Date"
    return parsed.strftime("%b %d, %Y, %I:%M %p")


def create_app(storage_path: Optional[Path | str] = None, *, max_sessions: int = MAX_SESSIONS) -> TruckCheckWebApp:
    path = Path(storage_path) if storage_path else Path("truck_check.db")
    return TruckCheckWebApp(path, max_sessions=max_sessions)


if __name__ == "__main__":  # pragma: no cover - manual execution helper
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    create_app().run()
