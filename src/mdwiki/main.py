"""MdWiki FastAPI application."""

import logging
from urllib.parse import quote

from fastapi import FastAPI, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from jinja2 import TemplateError

from mdwiki.config import Settings, settings
from mdwiki.core.exceptions import InvalidTitleError, PageNotFoundError
from mdwiki.core.models import Page
from mdwiki.core.renderer import Renderer
from mdwiki.core.storage import FileStorage, Storage
from mdwiki.views import View, compile_views

logger = logging.getLogger(__name__)

ERROR_PAGE = "<!DOCTYPE html><title>{status}</title><h1>{status}</h1><p>{message}</p>"


def error_response(status_code: int, status: str, message: str) -> HTMLResponse:
    """Build a bare HTML error page that does not depend on the templates."""
    return HTMLResponse(
        ERROR_PAGE.format(status=status, message=message), status_code=status_code
    )


def create_app(
    config: Settings | None = None,
    storage: Storage | None = None,
    log: logging.Logger | None = None,
) -> FastAPI:
    """Create the wiki application.

    Templates are compiled here, so a missing or broken template stops the
    app from being created at all.
    """
    config = config or settings
    log = log or logger
    storage = storage or FileStorage(config.data_dir, log=log)
    renderer = Renderer(page_exists=storage.page_exists)

    templates = Jinja2Templates(directory=str(config.templates_dir))

    app = FastAPI(title=config.app_title, debug=config.debug)
    app.state.storage = storage
    app.state.views = compile_views(templates.env)
    app.mount("/static", StaticFiles(directory=str(config.static_dir)), name="static")

    def render_view(request: Request, view: View, **kwargs) -> HTMLResponse:
        """Render a view inside the shared layout."""
        context = {
            "request": request,
            "app_title": config.app_title,
            **kwargs,
        }
        return HTMLResponse(request.app.state.views[view].render(context))

    # ========== Error mapping ==========

    @app.exception_handler(InvalidTitleError)
    async def invalid_title(request: Request, exc: InvalidTitleError):
        log.warning("Rejected %s %s: %s", request.method, request.url.path, exc)
        return error_response(400, "400 Bad Request", "Invalid page title.")

    @app.exception_handler(PageNotFoundError)
    async def page_not_found(request: Request, exc: PageNotFoundError):
        return error_response(404, "404 Not Found", "Page not found.")

    @app.exception_handler(OSError)
    async def io_failure(request: Request, exc: OSError):
        log.error(
            "I/O failure on %s %s", request.method, request.url.path, exc_info=exc
        )
        return error_response(500, "500 Internal Server Error", "Storage error.")

    @app.exception_handler(TemplateError)
    async def template_failure(request: Request, exc: TemplateError):
        log.error(
            "Template failure on %s %s", request.method, request.url.path, exc_info=exc
        )
        return error_response(500, "500 Internal Server Error", "Template error.")

    # ========== Pages ==========

    @app.get("/", response_class=HTMLResponse)
    def home(request: Request):
        """Home page - list all pages with their rendered bodies."""
        pages = request.app.state.storage.list_pages()
        return render_view(request, View.HOME, pages=pages)

    @app.get("/view/{title}", response_class=HTMLResponse)
    def view_page(request: Request, title: str):
        """View a wiki page."""
        try:
            page = request.app.state.storage.load_rendered(title)
        except PageNotFoundError:
            # Page doesn't exist - redirect to edit to create it
            return RedirectResponse(url=f"/edit/{quote(title)}", status_code=302)
        return render_view(request, View.VIEW, page=page)

    @app.get("/edit/{title}", response_class=HTMLResponse)
    def edit_page(request: Request, title: str):
        """Edit page form."""
        try:
            page = request.app.state.storage.load_raw(title)
        except PageNotFoundError:
            page = Page(title=title, body=b"", exists=False)
        return render_view(request, View.EDIT, page=page)

    @app.post("/save/{title}")
    def save_page(request: Request, title: str, body: str = Form("")):
        """Save page content and redirect to its view."""
        request.app.state.storage.save(title, body.encode("utf-8"))
        return RedirectResponse(url=f"/view/{quote(title)}", status_code=302)

    @app.get("/raw/{title}")
    def raw_page(request: Request, title: str):
        """Get raw markdown content."""
        page = request.app.state.storage.load_raw(title)
        return Response(content=page.body, media_type="text/markdown; charset=utf-8")

    # ========== Editor API ==========

    @app.post("/api/preview", response_class=HTMLResponse)
    def api_preview(body: str = Form("")):
        """Render markdown preview for the editor."""
        return HTMLResponse(renderer.render_text(body))

    return app
