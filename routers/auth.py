from typing import Optional

from fastapi import APIRouter, Form, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from starlette.concurrency import run_in_threadpool

from security import (
    _clear_auth_cookie,
    _is_login_allowed,
    _set_auth_cookie,
    authenticate,
)
from tokens import _get_authenticated_principal, issue_token
from ui import error_fragment, page, success_fragment
from validation import ValidationError, sanitize_string, validate_credentials

router = APIRouter()

INVALID_CREDENTIALS = "Invalid credentials"
TOO_MANY_ATTEMPTS = "Too many attempts. Please wait before trying again."
MIN_SIGNUP_PASSWORD_LENGTH = 8


def _state(request: Request):
    return request.app.state.settings, request.app.state.authority


@router.get("/login", response_class=HTMLResponse)
def login_get(request: Request):
    settings, _ = _state(request)
    if _get_authenticated_principal(request):
        return RedirectResponse(url="/", status_code=303)
    signup_link = (
        '<p class="text-muted" style="margin-top:16px;">No account yet? '
        '<a href="/signup" style="color:#3b82f6;">Sign up</a></p>'
    ) if settings.is_multi_user else ""
    body = f"""
  <div class="container">
    <div class="card" style="max-width:400px; margin:3rem auto;">
      <h1>TrackMe</h1>
      <p class="text-muted">Simple symptom tracking</p>
      <div id="login-message"></div>
      <form hx-post="/api/login" hx-target="#login-message" hx-swap="innerHTML">
        <div class="form-group">
          <label for="username">Username</label>
          <input type="text" id="username" name="username" placeholder="Your username"
            autocomplete="username" maxlength="{settings.max_credential_length}" required>
        </div>
        <div class="form-group">
          <label for="password">Password</label>
          <input type="password" id="password" name="password" placeholder="Your password"
            autocomplete="current-password" maxlength="{settings.max_credential_length}" required>
        </div>
        <button type="submit" class="btn-primary" style="width:100%;">Log In</button>
      </form>
      {signup_link}
    </div>
  </div>"""
    return page("Log In - TrackMe", body)


@router.post("/api/login")
def login_post(
    request: Request,
    username: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
):
    settings, authority = _state(request)
    if not _is_login_allowed(request):
        return HTMLResponse(error_fragment(TOO_MANY_ATTEMPTS), status_code=429)
    principal = authenticate(username, password, authority, settings)
    if principal is None:
        return HTMLResponse(error_fragment(INVALID_CREDENTIALS), status_code=401)
    resp = HTMLResponse(success_fragment("Logged in, redirecting..."))
    resp.headers["HX-Redirect"] = "/"
    return _set_auth_cookie(resp, issue_token(principal, authority, settings), settings)


@router.post("/api/token")
async def token_post(request: Request):
    """JSON login for bearer clients: {"username": ..., "password": ...}."""
    settings, authority = _state(request)
    if not _is_login_allowed(request):
        return JSONResponse({"error": TOO_MANY_ATTEMPTS}, status_code=429)
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError("body", "Request body must be a JSON object")
    if not isinstance(body, dict):
        raise ValidationError("body", "Request body must be a JSON object")
    principal = await run_in_threadpool(
        authenticate, body.get("username"), body.get("password"), authority, settings
    )
    if principal is None:
        return JSONResponse({"error": INVALID_CREDENTIALS}, status_code=401)
    return {
        "access_token": issue_token(principal, authority, settings),
        "token_type": "bearer",
        "expires_in": settings.cookie_max_age,
    }


@router.post("/api/logout")
def logout():
    resp = Response(content="", status_code=200)
    resp.headers["HX-Redirect"] = "/login"
    return _clear_auth_cookie(resp)


@router.get("/signup", response_class=HTMLResponse)
def signup_get(request: Request):
    settings, _ = _state(request)
    if not settings.is_multi_user:
        raise HTTPException(status_code=404)
    body = f"""
  <div class="container">
    <div class="card" style="max-width:400px; margin:3rem auto;">
      <h1>Set Up Your Account</h1>
      <p class="text-muted">Choose a username and password to protect your symptom tracker.</p>
      <div id="signup-message"></div>
      <form hx-post="/api/signup" hx-target="#signup-message" hx-swap="innerHTML">
        <div class="form-group">
          <label for="username">Username</label>
          <input type="text" id="username" name="username" autocomplete="username"
            maxlength="{settings.max_credential_length}" required>
        </div>
        <div class="form-group">
          <label for="new_password">Password</label>
          <input type="password" id="new_password" name="new_password"
            placeholder="At least {MIN_SIGNUP_PASSWORD_LENGTH} characters" autocomplete="new-password"
            maxlength="{settings.max_credential_length}" required>
        </div>
        <div class="form-group">
          <label for="confirm_password">Confirm Password</label>
          <input type="password" id="confirm_password" name="confirm_password"
            autocomplete="new-password" maxlength="{settings.max_credential_length}" required>
        </div>
        <button type="submit" class="btn-primary" style="width:100%;">Create Account</button>
      </form>
      <p class="text-muted" style="margin-top:16px;">
        Already registered? <a href="/login" style="color:#3b82f6;">Log in</a>
      </p>
    </div>
  </div>"""
    return page("Sign Up - TrackMe", body)


@router.post("/api/signup")
def signup_post(
    request: Request,
    username: Optional[str] = Form(None),
    new_password: Optional[str] = Form(None),
    confirm_password: Optional[str] = Form(None),
):
    settings, authority = _state(request)
    if not settings.is_multi_user:
        raise HTTPException(status_code=404)
    username, password = validate_credentials(username, new_password, settings)
    if len(password) < MIN_SIGNUP_PASSWORD_LENGTH:
        raise ValidationError(
            "password", f"Password must be at least {MIN_SIGNUP_PASSWORD_LENGTH} characters"
        )
    if sanitize_string(confirm_password or "") != password:
        raise ValidationError("confirm_password", "Passwords do not match")
    if authority.username_taken(username):
        raise ValidationError("username", "Username already taken")
    principal = authority.create_user(username, password)
    resp = HTMLResponse(success_fragment("Account created, redirecting..."))
    resp.headers["HX-Redirect"] = "/"
    return _set_auth_cookie(resp, issue_token(principal, authority, settings), settings)
