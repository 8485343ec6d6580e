from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse

from db import get_db
from security import require_principal
from ui import (
    empty_fragment,
    error_fragment,
    escape_html,
    format_long_date,
    format_relative_date,
    format_time,
    page,
    success_fragment,
    top_nav,
)
from validation import validate_flag, validate_id, validate_notes, validate_symptom_name

router = APIRouter()
HISTORY_LIMIT = 100

_LOG_MODAL = """
<dialog id="log-modal">
  <h2 id="log-modal-title">Log symptom</h2>
  <form hx-post="/api/log-symptom" hx-target="#message" hx-swap="innerHTML"
        hx-on::after-request="if (event.detail.successful) { document.getElementById('log-modal').close(); this.reset(); htmx.trigger(document.body, 'reload-history'); }">
    <input type="hidden" id="log-type-id" name="type_id">
    <div class="form-group">
      <label for="notes">Notes <span style="color:#aaa;font-weight:400">(optional)</span></label>
      <textarea id="notes" name="notes" rows="3" maxlength="{max_notes}"></textarea>
    </div>
    <div class="form-group">
      <label><input type="checkbox" name="medication_taken"> Medication taken</label>
    </div>
    <div class="top-nav">
      <button type="button" class="btn-outline" onclick="document.getElementById('log-modal').close()">Cancel</button>
      <button type="submit" class="btn-primary" style="flex:1;">Save</button>
    </div>
  </form>
</dialog>
<script>
  function openModal(id, name) {
    document.getElementById("log-type-id").value = id;
    document.getElementById("log-modal-title").textContent = name;
    document.getElementById("log-modal").showModal();
  }
</script>
"""

_ADMIN_SCRIPT = """
<script>
  document.body.addEventListener("htmx:afterRequest", function (evt) {
    var path = evt.detail.requestConfig && evt.detail.requestConfig.path || "";
    if (evt.detail.successful && path.indexOf("/api/admin/") === 0 && path !== "/api/admin/symptom-list") {
      htmx.trigger(document.body, "reload-list");
    }
  });
</script>
"""


def _settings(request: Request):
    return request.app.state.settings


def _today_utc() -> datetime:
    return datetime.now(timezone.utc)


@router.get("/", response_class=HTMLResponse)
def home(request: Request):
    settings = _settings(request)
    principal = require_principal(request)
    body = f"""
  <div class="container">
    <h1>TrackMe</h1>
    <p class="text-muted">Signed in as {escape_html(principal.username)}</p>
    {top_nav('<a href="/admin" class="btn-outline">Admin</a>')}
    <div id="message"></div>
    <h2>Log a Symptom</h2>
    <div id="symptom-buttons" class="symptom-grid"
         hx-get="/api/symptom-buttons" hx-trigger="load" hx-swap="innerHTML">
      <div class="empty">Loading...</div>
    </div>
    <h2>History ({settings.history_days} days)</h2>
    <div id="history" hx-get="/api/history-items"
         hx-trigger="load, reload-history from:body" hx-swap="innerHTML">
      <div class="empty">Loading...</div>
    </div>
  </div>"""
    return page("TrackMe", body, _LOG_MODAL.replace("{max_notes}", str(settings.max_note_length)))


@router.get("/admin", response_class=HTMLResponse)
def admin(request: Request):
    settings = _settings(request)
    require_principal(request)
    body = f"""
  <div class="container">
    <h1>Admin</h1>
    <p class="text-muted">Manage symptom types</p>
    {top_nav('<a href="/" class="btn-outline">&larr; Back</a>')}
    <div id="message"></div>
    <div class="card">
      <h2 style="margin-top:0;">Add Symptom</h2>
      <form hx-post="/api/admin/add-symptom" hx-target="#message" hx-swap="innerHTML">
        <div class="form-group">
          <input type="text" name="name" placeholder="e.g. Headache" required
            maxlength="{settings.max_symptom_name_length}">
        </div>
        <button type="submit" class="btn-primary">Add</button>
      </form>
    </div>
    <h2>Symptom Types</h2>
    <div id="symptom-list" hx-get="/api/admin/symptom-list"
         hx-trigger="load, reload-list from:body" hx-swap="innerHTML">
      <div class="empty">Loading...</div>
    </div>
  </div>"""
    return page("Admin - TrackMe", body, _ADMIN_SCRIPT)


@router.get("/api/me")
def api_me(request: Request):
    principal = require_principal(request)
    return {
        "id": principal.id,
        "username": principal.username,
        "created_at": principal.created_at,
        "last_login": principal.last_login,
    }


@router.get("/api/symptom-buttons", response_class=HTMLResponse)
def symptom_buttons(request: Request):
    require_principal(request)
    with get_db(_settings(request).db_path) as conn:
        rows = conn.execute("SELECT id, name FROM symptom_types ORDER BY name ASC").fetchall()
    if not rows:
        return empty_fragment("No symptoms configured yet. Add some from the Admin page.")
    return "".join(
        f'<button class="symptom-btn" data-symptom-id="{r["id"]}"'
        f' data-symptom-name="{escape_html(r["name"])}"'
        ' onclick="openModal(this.dataset.symptomId, this.dataset.symptomName)">'
        f'{escape_html(r["name"])}</button>'
        for r in rows
    )


@router.get("/api/history-items", response_class=HTMLResponse)
def history_items(request: Request):
    settings = _settings(request)
    principal = require_principal(request)
    today = _today_utc().date()
    since = (today - timedelta(days=settings.history_days)).isoformat()
    with get_db(settings.db_path) as conn:
        rows = conn.execute(
            """
            SELECT sl.id, sl.notes, sl.medication_taken, sl.date, sl.timestamp,
                   st.name AS symptom_name
            FROM symptom_logs sl
            JOIN symptom_types st ON sl.type_id = st.id
            WHERE sl.date >= ? AND sl.user_id IS ?
            ORDER BY sl.timestamp DESC, sl.id DESC
            LIMIT ?
            """,
            (since, principal.id, HISTORY_LIMIT),
        ).fetchall()
    if not rows:
        return empty_fragment("No entries yet")
    items = []
    for r in rows:
        med = (
            ' <span class="medication-badge" title="Medication taken">&#128138;</span>'
            if r["medication_taken"] == 1 else ""
        )
        notes = f'<div class="history-notes">{escape_html(r["notes"])}</div>' if r["notes"] else ""
        items.append(
            '<div class="history-item">'
            f'<div class="history-date">{escape_html(format_relative_date(r["date"], today))}</div>'
            f'<div class="history-type">{escape_html(r["symptom_name"])}{med}</div>'
            f"{notes}"
            f'<div class="history-time">{escape_html(format_time(r["timestamp"]))}</div>'
            "</div>"
        )
    return "".join(items)


@router.post("/api/log-symptom", response_class=HTMLResponse)
def log_symptom(
    request: Request,
    type_id: Optional[str] = Form(None),
    notes: Optional[str] = Form(None),
    medication_taken: Optional[str] = Form(None),
):
    settings = _settings(request)
    principal = require_principal(request)
    type_id = validate_id(type_id, "type_id")
    notes = validate_notes(notes, settings)
    taken = validate_flag(medication_taken)
    with get_db(settings.db_path) as conn:
        if not conn.execute("SELECT 1 FROM symptom_types WHERE id = ?", (type_id,)).fetchone():
            return HTMLResponse(error_fragment("Symptom not found"), status_code=404)
        conn.execute(
            "INSERT INTO symptom_logs (user_id, type_id, notes, medication_taken, date)"
            " VALUES (?, ?, ?, ?, ?)",
            (principal.id, type_id, notes, taken, _today_utc().date().isoformat()),
        )
        conn.commit()
    return success_fragment("Logged successfully")


@router.get("/api/admin/symptom-list", response_class=HTMLResponse)
def admin_symptom_list(request: Request):
    require_principal(request)
    with get_db(_settings(request).db_path) as conn:
        rows = conn.execute(
            "SELECT id, name, created_at FROM symptom_types ORDER BY name ASC"
        ).fetchall()
    if not rows:
        return empty_fragment("No symptoms configured")
    items = []
    for r in rows:
        name = escape_html(r["name"])
        items.append(
            '<div class="symptom-item">'
            f'<div><div class="symptom-name">{name}</div>'
            f'<div class="symptom-date">Created: {escape_html(format_long_date(r["created_at"]))}</div></div>'
            f'<button class="btn-delete" hx-delete="/api/admin/symptom/{r["id"]}"'
            f' hx-confirm="Delete &#x27;{name}&#x27;? This also deletes all of its log entries."'
            ' hx-target="#message" hx-swap="innerHTML">Delete</button>'
            "</div>"
        )
    return "".join(items)


@router.post("/api/admin/add-symptom", response_class=HTMLResponse)
def admin_add_symptom(request: Request, name: Optional[str] = Form(None)):
    settings = _settings(request)
    require_principal(request)
    name = validate_symptom_name(name, settings)
    with get_db(settings.db_path) as conn:
        existing = conn.execute(
            "SELECT id FROM symptom_types WHERE LOWER(name) = LOWER(?)", (name,)
        ).fetchone()
        if existing:
            return HTMLResponse(error_fragment("This symptom already exists"), status_code=400)
        conn.execute("INSERT INTO symptom_types (name) VALUES (?)", (name,))
        conn.commit()
    return success_fragment("Symptom added")


@router.delete("/api/admin/symptom/{symptom_id}", response_class=HTMLResponse)
def admin_delete_symptom(request: Request, symptom_id: str):
    settings = _settings(request)
    require_principal(request)
    symptom_id = validate_id(symptom_id)
    with get_db(settings.db_path) as conn:
        if not conn.execute("SELECT id FROM symptom_types WHERE id = ?", (symptom_id,)).fetchone():
            return HTMLResponse(error_fragment("Symptom not found"), status_code=404)
        conn.execute("DELETE FROM symptom_types WHERE id = ?", (symptom_id,))
        conn.commit()
    return success_fragment("Symptom deleted")
