import html
from datetime import date, datetime, timedelta
from typing import Optional


def escape_html(value) -> str:
    if value is None:
        return ""
    return html.escape(str(value)).replace("`", "&#96;")


PAGE_STYLE = """
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <script src="https://unpkg.com/htmx.org@1.9.10"></script>
  <style>
    body { font-family: system-ui, sans-serif; background: #f5f5f5; margin: 0; padding: 0; color: #222; }
    .container { max-width: 560px; margin: 0 auto; padding: 24px; }
    h1 { margin-bottom: 4px; }
    h2 { font-size: 18px; margin: 24px 0 10px; }
    .text-muted { color: #6b7280; font-size: 14px; }
    .card { background: #fff; border: 1px solid #e0e0e0; border-radius: 8px; padding: 16px; margin: 12px 0; }
    .top-nav { display: flex; gap: 10px; margin: 16px 0; }
    .btn-primary { background: #3b82f6; color: #fff; border: none; border-radius: 8px;
                   padding: 10px 22px; font-size: 15px; cursor: pointer; font-weight: 600; }
    .btn-primary:hover { background: #2563eb; }
    .btn-outline { display: inline-block; background: #fff; color: #3b82f6; border: 1px solid #d1d5db;
                   border-radius: 8px; padding: 8px 16px; font-size: 14px; text-decoration: none;
                   cursor: pointer; text-align: center; flex: 1; }
    .btn-outline:hover { background: #eff6ff; border-color: #3b82f6; }
    .btn-delete { background: none; border: 1px solid #e0e0e0;
                  border-radius: 6px; padding: 4px 10px; font-size: 13px; color: #888;
                  cursor: pointer; }
    .btn-delete:hover { background: #fee2e2; border-color: #ef4444; color: #ef4444; }
    .form-group { margin-bottom: 20px; }
    label { display: block; font-weight: 600; font-size: 14px; margin-bottom: 6px; }
    input[type=text], input[type=password], textarea { width: 100%; box-sizing: border-box; border: 1px solid #d1d5db;
      border-radius: 6px; padding: 8px 10px; font-size: 15px; font-family: inherit; }
    input[type=text]:focus, input[type=password]:focus, textarea:focus { outline: 2px solid #3b82f6; border-color: transparent; }
    .symptom-grid { display: grid; grid-template-columns: repeat(auto-fill, minmax(140px, 1fr)); gap: 10px; }
    .symptom-btn { background: #fff; border: 1px solid #d1d5db; border-radius: 8px; padding: 14px 10px;
                   font-size: 15px; cursor: pointer; }
    .symptom-btn:hover { border-color: #3b82f6; background: #eff6ff; }
    .symptom-item { display: flex; justify-content: space-between; align-items: center;
                    background: #fff; border: 1px solid #e0e0e0; border-radius: 8px; padding: 12px 16px; margin-bottom: 8px; }
    .symptom-name { font-weight: 600; }
    .symptom-date { font-size: 12px; color: #888; margin-top: 2px; }
    .history-item { background: #fff; border: 1px solid #e0e0e0; border-radius: 8px; padding: 12px 16px; margin-bottom: 8px; }
    .history-date { font-size: 12px; color: #888; }
    .history-type { font-size: 16px; font-weight: 600; margin-top: 2px; }
    .history-notes { margin-top: 6px; font-size: 14px; color: #444; }
    .history-time { font-size: 12px; color: #888; margin-top: 4px; }
    .alert, .error { background: #fee2e2; border: 1px solid #fca5a5; color: #b91c1c;
             border-radius: 6px; padding: 10px 14px; margin-bottom: 16px; font-size: 14px; }
    .success { background: #dcfce7; border: 1px solid #86efac; color: #15803d;
               border-radius: 6px; padding: 10px 14px; margin-bottom: 16px; font-size: 14px; }
    .empty { color: #888; font-style: italic; margin-top: 16px; }
    dialog { border: none; border-radius: 10px; padding: 20px; max-width: 420px; width: 90%; }
    dialog::backdrop { background: rgba(0,0,0,0.4); }
  </style>
"""


def page(title: str, body: str, scripts: str = "") -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
<head>{PAGE_STYLE}<title>{escape_html(title)}</title></head>
<body>
{body}
{scripts}
</body>
</html>
"""


def top_nav(*links: str) -> str:
    logout = (
        '<form hx-post="/api/logout" hx-swap="none" style="display:inline; flex:1;">'
        '<button type="submit" class="btn-outline" style="width:100%;">Log out</button></form>'
    )
    return f'<div class="top-nav">{"".join(links)}{logout}</div>'


def success_fragment(message: str) -> str:
    return f'<div class="success">{escape_html(message)}</div>'


def error_fragment(message: str) -> str:
    return f'<div class="error">{escape_html(message)}</div>'


def empty_fragment(message: str) -> str:
    return f'<p class="empty">{escape_html(message)}</p>'


def format_relative_date(day: str, today: Optional[date] = None) -> str:
    """'Today', 'Yesterday', or a full date like 'Monday, March 3, 2025'."""
    try:
        d = datetime.strptime(day, "%Y-%m-%d").date()
    except (TypeError, ValueError):
        return day or ""
    today = today or date.today()
    if d == today:
        return "Today"
    if d == today - timedelta(days=1):
        return "Yesterday"
    return f"{d.strftime('%A, %B')} {d.day}, {d.year}"


def format_time(ts: str) -> str:
    try:
        return datetime.strptime(ts, "%Y-%m-%d %H:%M:%S").strftime("%H:%M")
    except (TypeError, ValueError):
        return ""


def format_long_date(ts: str) -> str:
    try:
        d = datetime.strptime(ts[:10], "%Y-%m-%d").date()
    except (TypeError, ValueError):
        return ""
    return f"{d.strftime('%B')} {d.day}, {d.year}"
