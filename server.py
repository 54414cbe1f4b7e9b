from __future__ import annotations

import logging
import sys
import threading
import webbrowser
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import FileResponse, PlainTextResponse, RedirectResponse, Response
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from molesk_backend.cli import parse_args
from molesk_backend.config import ERROR_MESSAGES, Settings, settings_from_env
from molesk_backend.content import ContentResolver, ImageAsset
from molesk_backend.errors import (
    ContentError,
    ContentNotFoundError,
    FeedUnavailableError,
    PathTraversalError,
    UnsupportedFileTypeError,
)
from molesk_backend.watcher import CacheInvalidator


BACKEND_DIR = Path(__file__).resolve().parent / "molesk_backend"

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "Content-Security-Policy": (
        "default-src 'self'; "
        "script-src 'self' https://cdnjs.cloudflare.com; "
        "style-src 'self' 'unsafe-inline' https://cdnjs.cloudflare.com https://fonts.googleapis.com; "
        "font-src 'self' https://cdnjs.cloudflare.com https://fonts.gstatic.com; "
        "img-src 'self' data:; "
        "frame-ancestors 'none';"
    ),
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
}

templates = Jinja2Templates(directory=str(BACKEND_DIR / "templates"))


def _is_ajax(request: Request) -> bool:
    return request.headers.get("x-requested-with", "").lower() == "xmlhttprequest"


def _page_context(settings: Settings, **extra) -> dict:
    context = {
        "title": settings.title,
        "image": settings.image is not None,
        "social_links": settings.social_links,
        "source_link": settings.source_link if settings.show_source else None,
        "show_rss": settings.show_rss,
        "show_download": settings.show_download,
        "single_file": settings.single_file is not None,
        "relative_path": None,
    }
    context.update(extra)
    return context


async def _render_error_page(request: Request, status_code: int) -> Response:
    resolver: ContentResolver = request.app.state.resolver
    settings: Settings = request.app.state.settings

    if status_code == 404:
        message = ERROR_MESSAGES["NOT_FOUND"]
    elif status_code == 400:
        message = ERROR_MESSAGES["UNSUPPORTED_FILE"]
    else:
        message = ERROR_MESSAGES["GENERIC_ERROR"]

    folder_structure = await run_in_threadpool(resolver.error_page_tree)
    context = _page_context(
        settings,
        folder_structure=folder_structure,
        initial_content=resolver.render_error(message),
        page_title=f"{status_code} - {settings.title}",
    )
    return templates.TemplateResponse(request, "index.html", context, status_code=status_code)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or settings_from_env()
    resolver = ContentResolver(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        invalidator = None
        if settings.watch:
            invalidator = CacheInvalidator(settings.content_root, resolver.cache, settings.watch_interval)
            if not await invalidator.start():
                invalidator = None
        app.state.invalidator = invalidator
        try:
            yield
        finally:
            if invalidator is not None:
                await invalidator.stop()

    app = FastAPI(lifespan=lifespan)
    app.state.settings = settings
    app.state.resolver = resolver
    app.state.invalidator = None

    @app.middleware("http")
    async def _security_headers(request: Request, call_next):
        response = await call_next(request)
        for key, value in SECURITY_HEADERS.items():
            response.headers.setdefault(key, value)
        return response

    @app.exception_handler(PathTraversalError)
    async def _path_traversal(request: Request, exc: PathTraversalError) -> Response:
        logger.warning("Rejected path outside content root: %s", request.url.path)
        return PlainTextResponse(exc.message, status_code=exc.status_code)

    @app.exception_handler(ContentError)
    async def _content_error(request: Request, exc: ContentError) -> Response:
        logger.info("%s %s -> %s (%s)", request.method, request.url.path, exc.status_code, exc)
        return await _render_error_page(request, exc.status_code)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> Response:
        if exc.status_code == 404:
            return await _render_error_page(request, 404)
        return await http_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def _unexpected_error(request: Request, exc: Exception) -> Response:
        logger.exception("Unhandled error for %s", request.url.path)
        return await _render_error_page(request, 500)

    @app.get("/")
    async def index() -> Response:
        url = await run_in_threadpool(resolver.index_url)
        return RedirectResponse(url, status_code=302)

    @app.get("/content/{path:path}")
    async def content(path: str, request: Request) -> Response:
        resolved = await run_in_threadpool(resolver.resolve, path)
        if isinstance(resolved, ImageAsset):
            return FileResponse(resolved.path, media_type=resolved.mime_type)

        if _is_ajax(request):
            return Response(content=resolved.html, media_type="text/html")

        folder_structure = await run_in_threadpool(resolver.folder_structure, resolved.relative_path)
        context = _page_context(
            settings,
            folder_structure=folder_structure,
            initial_content=resolved.html,
            relative_path=resolved.relative_path,
            page_title=resolved.page_title,
        )
        return templates.TemplateResponse(request, "index.html", context)

    @app.get("/download/{path:path}")
    async def download(path: str) -> Response:
        try:
            target = await run_in_threadpool(resolver.download, path)
        except UnsupportedFileTypeError:
            return PlainTextResponse(ERROR_MESSAGES["UNSUPPORTED_FILE"], status_code=400)
        return FileResponse(target.path, filename=target.filename, media_type="text/markdown; charset=utf-8")

    @app.get("/rss.xml")
    async def rss_feed() -> Response:
        try:
            xml = await run_in_threadpool(resolver.rss_feed)
        except FeedUnavailableError as exc:
            return PlainTextResponse(exc.message, status_code=exc.status_code)
        return Response(
            content=xml,
            media_type="application/rss+xml",
            headers={"Cache-Control": "public, max-age=300"},
        )

    @app.get("/profile-pic")
    async def profile_pic() -> Response:
        if settings.image is None:
            return PlainTextResponse("Image not found", status_code=404)
        try:
            image = await run_in_threadpool(resolver.profile_image)
        except OSError:
            logger.exception("Failed to read profile image %s", settings.image)
            raise ContentNotFoundError("Image not found")
        return Response(
            content=image.data,
            media_type=image.mime_type,
            headers={"Cache-Control": "public, max-age=3600"},
        )

    @app.get("/favicon.svg")
    async def favicon_svg() -> Response:
        if settings.image is None:
            return PlainTextResponse("Favicon not found", status_code=404)
        try:
            svg = await run_in_threadpool(resolver.favicon_svg)
        except OSError:
            logger.exception("Failed to read profile image %s", settings.image)
            raise ContentNotFoundError("Favicon not found")
        return Response(
            content=svg,
            media_type="image/svg+xml",
            headers={"Cache-Control": "public, max-age=3600"},
        )

    @app.get("/favicon.ico")
    async def favicon_ico() -> Response:
        if settings.image is not None:
            return RedirectResponse("/favicon.svg", status_code=301)
        return Response(status_code=204)

    app.mount("/static", StaticFiles(directory=str(BACKEND_DIR / "static")), name="static")
    return app


def _browser_url(settings: Settings) -> str:
    host = "localhost" if settings.host == "0.0.0.0" else settings.host
    url = f"http://{host}:{settings.port}"
    if settings.single_file is not None:
        url += "/content/" + quote(settings.single_file.name)
    return url


def main(argv=None) -> int:
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    try:
        settings = parse_args(argv)
    except FileNotFoundError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    app = create_app(settings)
    url = _browser_url(settings)
    logger.info("Running on %s", url)
    if settings.auto_open:
        threading.Timer(1.0, webbrowser.open, args=(url,)).start()
    uvicorn.run(app, host=settings.host, port=settings.port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
