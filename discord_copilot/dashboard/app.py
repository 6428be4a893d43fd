"""
Admin dashboard: a FastAPI app for editing what the bot reads from the store.

Three panels on one authenticated page:
- System instructions editor
- Channel allow-list (add with validation, enable/disable, remove with confirmation)
- Conversation memory viewer (polled every few seconds) with reset

Every POST redirects back to /dashboard (303) with a one-shot feedback
message kept in the signed session cookie.
"""

from __future__ import annotations

from contextlib import AsyncExitStack, asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import Depends, FastAPI, Form, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates
from starlette.middleware.sessions import SessionMiddleware

from discord_copilot import __version__
from discord_copilot.config.logging import get_logger
from discord_copilot.config.settings import Settings
from discord_copilot.dashboard.auth import AdminAuth, AdminUser, AuthenticationError, SupabaseAdminAuth
from discord_copilot.store import PersistenceAccessor, StoreError, ValidationError, create_store_client

logger = get_logger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

SESSION_ADMIN_KEY = "admin"
SESSION_FLASH_KEY = "flash"


class LoginRequired(Exception):
    """Raised by the auth dependency when no admin is signed in."""


# ---------------------------------------------------------------------------
# Session helpers and dependencies
# ---------------------------------------------------------------------------

def flash(request: Request, kind: str, message: str) -> None:
    request.session[SESSION_FLASH_KEY] = {"type": kind, "message": message}


def pop_flash(request: Request) -> dict[str, str] | None:
    return request.session.pop(SESSION_FLASH_KEY, None)


def current_admin(request: Request) -> AdminUser:
    data = request.session.get(SESSION_ADMIN_KEY)
    if not data:
        raise LoginRequired()
    return AdminUser.from_session(data)


def get_store(request: Request) -> PersistenceAccessor:
    return request.app.state.store


def get_auth(request: Request) -> AdminAuth:
    return request.app.state.auth


def _back_to_dashboard() -> RedirectResponse:
    return RedirectResponse("/dashboard", status_code=303)


async def login_required_handler(request: Request, exc: LoginRequired) -> Response:
    if request.url.path.startswith("/api/"):
        return JSONResponse({"detail": "Not authenticated"}, status_code=401)
    return RedirectResponse("/login", status_code=303)


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app(
    settings: Settings,
    store: PersistenceAccessor | None = None,
    auth: AdminAuth | None = None,
) -> FastAPI:
    """
    Build the dashboard app.

    Args:
        settings: Application settings (store credentials, session secret, refresh interval)
        store: Accessor to use instead of connecting on startup (tests)
        auth: Authenticator to use instead of Supabase Auth (tests)
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        async with AsyncExitStack() as stack:
            if app.state.store is None:
                client = await create_store_client(settings.store)
                stack.push_async_callback(client.postgrest.aclose)
                app.state.store = PersistenceAccessor(client)
                logger.info("Dashboard connected to store")
            if app.state.auth is None:
                # Separate client: a sign-in sets a user session on its auth state
                auth_client = await create_store_client(settings.store)
                stack.push_async_callback(auth_client.postgrest.aclose)
                app.state.auth = SupabaseAdminAuth(auth_client)
            yield

    app = FastAPI(title="Discord Copilot Dashboard", version=__version__, lifespan=lifespan)
    app.state.store = store
    app.state.auth = auth
    app.state.settings = settings

    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.dashboard.session_secret,
        same_site="lax",
        https_only=settings.environment == "production",
    )
    app.add_exception_handler(LoginRequired, login_required_handler)

    _register_auth_routes(app)
    _register_dashboard_routes(app)
    return app


def _register_auth_routes(app: FastAPI) -> None:

    @app.get("/")
    async def index(request: Request):
        target = "/dashboard" if request.session.get(SESSION_ADMIN_KEY) else "/login"
        return RedirectResponse(target, status_code=303)

    @app.get("/login", response_class=HTMLResponse)
    async def login_page(request: Request):
        if request.session.get(SESSION_ADMIN_KEY):
            return _back_to_dashboard()
        return templates.TemplateResponse(request, "login.html", {"error": None, "email": ""})

    @app.post("/login", response_class=HTMLResponse)
    async def login(
        request: Request,
        email: str = Form(...),
        password: str = Form(...),
        auth: AdminAuth = Depends(get_auth),
    ):
        try:
            admin = await auth.sign_in(email.strip(), password)
        except AuthenticationError as e:
            return templates.TemplateResponse(
                request, "login.html", {"error": str(e), "email": email}, status_code=401
            )
        except Exception as e:
            logger.error(f"Unexpected sign-in error: {e}", exc_info=True)
            return templates.TemplateResponse(
                request,
                "login.html",
                {"error": "An unexpected error occurred. Please try again.", "email": email},
                status_code=500,
            )

        request.session[SESSION_ADMIN_KEY] = admin.to_session()
        return _back_to_dashboard()

    @app.post("/logout")
    async def logout(request: Request):
        request.session.clear()
        return RedirectResponse("/login", status_code=303)


def _register_dashboard_routes(app: FastAPI) -> None:

    @app.get("/dashboard", response_class=HTMLResponse)
    async def dashboard(
        request: Request,
        admin: AdminUser = Depends(current_admin),
        store: PersistenceAccessor = Depends(get_store),
    ):
        context: dict[str, Any] = {
            "admin": admin,
            "feedback": pop_flash(request),
            "refresh_seconds": request.app.state.settings.dashboard.memory_refresh_seconds,
            "instructions": None,
            "instructions_error": None,
            "channels": [],
            "channels_error": None,
            "memory": None,
            "memory_error": None,
        }

        # Each panel loads on its own
        try:
            context["instructions"] = await store.get_instructions_record()
        except StoreError as e:
            logger.error(f"Error fetching system instructions: {e}")
            context["instructions_error"] = "Failed to load system instructions. Please refresh the page."
        try:
            context["channels"] = await store.list_channels()
        except StoreError as e:
            logger.error(f"Error fetching channels: {e}")
            context["channels_error"] = "✗ Failed to load channels. Please refresh the page."
        try:
            context["memory"] = await store.get_conversation_record()
        except StoreError as e:
            logger.error(f"Error fetching conversation state: {e}")
            context["memory_error"] = "✗ Failed to load conversation memory. Please refresh the page."

        return templates.TemplateResponse(request, "dashboard.html", context)

    @app.post("/instructions")
    async def save_instructions(
        request: Request,
        content: str = Form(""),
        admin: AdminUser = Depends(current_admin),
        store: PersistenceAccessor = Depends(get_store),
    ):
        try:
            await store.update_system_instructions(content, updated_by=admin.id)
        except ValidationError as e:
            flash(request, "error", f"✗ {e}")
        except StoreError as e:
            logger.error(f"Error saving system instructions: {e}")
            flash(request, "error", "✗ Failed to save system instructions. Please try again.")
        else:
            flash(request, "success", "✓ System instructions saved successfully!")
        return _back_to_dashboard()

    @app.post("/channels")
    async def add_channel(
        request: Request,
        channel_id: str = Form(""),
        channel_name: str = Form(""),
        admin: AdminUser = Depends(current_admin),
        store: PersistenceAccessor = Depends(get_store),
    ):
        if not channel_id.strip():
            flash(request, "error", "✗ Channel ID is required.")
            return _back_to_dashboard()

        try:
            await store.add_channel(channel_id, channel_name or None, added_by=admin.id)
        except ValidationError as e:
            flash(request, "error", f"✗ {e}")
        except StoreError as e:
            logger.error(f"Error adding channel: {e}")
            flash(request, "error", "✗ Failed to add channel. Please try again.")
        else:
            flash(request, "success", "✓ Channel added successfully!")
        return _back_to_dashboard()

    @app.post("/channels/{row_id}/toggle")
    async def toggle_channel(
        request: Request,
        row_id: str,
        enabled: bool = Form(...),
        admin: AdminUser = Depends(current_admin),
        store: PersistenceAccessor = Depends(get_store),
    ):
        try:
            await store.set_channel_enabled(row_id, enabled)
        except StoreError as e:
            logger.error(f"Error toggling channel {row_id}: {e}")
            flash(request, "error", "✗ Failed to update channel. Please try again.")
        else:
            flash(request, "success", f"✓ Channel {'enabled' if enabled else 'disabled'} successfully!")
        return _back_to_dashboard()

    @app.get("/channels/{row_id}/remove", response_class=HTMLResponse)
    async def confirm_remove_channel(
        request: Request,
        row_id: str,
        admin: AdminUser = Depends(current_admin),
        store: PersistenceAccessor = Depends(get_store),
    ):
        try:
            channels = await store.list_channels()
        except StoreError as e:
            logger.error(f"Error fetching channels: {e}")
            flash(request, "error", "✗ Failed to load channels. Please refresh the page.")
            return _back_to_dashboard()

        channel = next((ch for ch in channels if str(ch.id) == row_id), None)
        if channel is None:
            flash(request, "error", "✗ Channel not found.")
            return _back_to_dashboard()
        return templates.TemplateResponse(request, "confirm_remove.html", {"admin": admin, "channel": channel})

    @app.post("/channels/{row_id}/remove")
    async def remove_channel(
        request: Request,
        row_id: str,
        admin: AdminUser = Depends(current_admin),
        store: PersistenceAccessor = Depends(get_store),
    ):
        try:
            await store.delete_channel(row_id)
        except StoreError as e:
            logger.error(f"Error removing channel {row_id}: {e}")
            flash(request, "error", "✗ Failed to remove channel. Please try again.")
        else:
            flash(request, "success", "✓ Channel removed successfully!")
        return _back_to_dashboard()

    @app.get("/api/memory")
    async def memory_snapshot(
        admin: AdminUser = Depends(current_admin),
        store: PersistenceAccessor = Depends(get_store),
    ):
        try:
            state = await store.get_conversation_record()
        except StoreError as e:
            logger.error(f"Error fetching conversation state: {e}")
            return JSONResponse({"detail": "Failed to load conversation memory."}, status_code=503)
        return {
            "summary": state.summary,
            "message_count": state.message_count,
            "last_updated": state.last_updated.isoformat() if state.last_updated else None,
            "has_history": state.has_history,
        }

    @app.post("/memory/reset")
    async def reset_memory(
        request: Request,
        admin: AdminUser = Depends(current_admin),
        store: PersistenceAccessor = Depends(get_store),
    ):
        try:
            await store.reset_conversation()
        except StoreError as e:
            logger.error(f"Error resetting memory: {e}")
            flash(request, "error", "✗ Failed to reset memory. Please try again.")
        else:
            logger.info(f"Conversation memory reset by {admin.email}")
            flash(request, "success", "✓ Conversation memory reset successfully!")
        return _back_to_dashboard()
