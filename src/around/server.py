"""Executable HTTP wiring for the around service."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import signal

from aiohttp import web
from dotenv import load_dotenv

from .config import FilterConfig, SearchConfig, ServerConfig, Settings, StoreConfig
from .errors import AroundError, MalformedInput, QueryFailed, StoreUnavailable
from .filtering import LexiconRegistry, load_lexicon_file
from .models import Location, Post
from .services import AroundService
from .storage import AbstractStorage, build_storage

LOGGER = logging.getLogger(__name__)

SERVICE_KEY = web.AppKey("service", AroundService)
SETTINGS_KEY = web.AppKey("settings", Settings)

_ERROR_STATUSES: dict[type[AroundError], int] = {
    MalformedInput: 400,
    StoreUnavailable: 503,
    QueryFailed: 502,
}


def _parse_int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        LOGGER.warning("Environment variable %s must be an integer (got %r)", name, raw)
        return default
    if value <= 0:
        LOGGER.warning("Environment variable %s must be positive, got %s", name, value)
        return default
    return value


def _parse_float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        value = float(raw.replace(",", "."))
    except ValueError:
        LOGGER.warning("Environment variable %s must be a number (got %r)", name, raw)
        return default
    if value <= 0:
        LOGGER.warning("Environment variable %s must be positive, got %s", name, value)
        return default
    return value


def _parse_words(raw: str | None) -> set[str] | None:
    if raw is None:
        return None
    return {chunk.strip() for chunk in raw.split(",") if chunk.strip()}


def load_settings() -> Settings:
    load_dotenv()
    filter_config = FilterConfig(words_file=os.environ.get("AROUND_SPAM_WORDS_FILE") or None)
    words = _parse_words(os.environ.get("AROUND_SPAM_WORDS"))
    if words is not None:
        filter_config.banned_words = words
    return Settings(
        store=StoreConfig(
            url=os.environ.get("AROUND_ES_URL", "http://localhost:9200"),
            backend=os.environ.get("AROUND_STORE", "elasticsearch").strip().lower(),
            index=os.environ.get("AROUND_INDEX", "around"),
            doc_type=os.environ.get("AROUND_DOC_TYPE", "post"),
        ),
        search=SearchConfig(
            default_range_km=_parse_float_env("AROUND_DEFAULT_RANGE_KM", 200.0),
            max_results=_parse_int_env("AROUND_MAX_RESULTS", 100),
        ),
        filter=filter_config,
        server=ServerConfig(
            host=os.environ.get("AROUND_HOST", "0.0.0.0"),
            port=_parse_int_env("AROUND_PORT", 8080),
            log_level=os.environ.get("AROUND_LOG_LEVEL", "INFO").upper(),
        ),
    )


def build_lexicon(filter_config: FilterConfig) -> LexiconRegistry:
    if filter_config.words_file:
        return LexiconRegistry.from_words(load_lexicon_file(filter_config.words_file))
    return LexiconRegistry.from_words(filter_config.banned_words)


def _query_float(request: web.Request, name: str, *, required: bool) -> float | None:
    raw = request.query.get(name, "").strip()
    if not raw:
        if required:
            raise MalformedInput(f"Missing query parameter {name!r}")
        return None
    try:
        return float(raw)
    except ValueError as exc:
        raise MalformedInput(f"Query parameter {name!r} must be a number (got {raw!r})") from exc


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except AroundError as exc:
        status = next(
            (code for error_type, code in _ERROR_STATUSES.items() if isinstance(exc, error_type)),
            500,
        )
        if status >= 500:
            LOGGER.exception("Request %s %s failed", request.method, request.path)
        else:
            LOGGER.info("Rejected %s %s: %s", request.method, request.path, exc)
        return web.Response(status=status, text=f"{exc}\n")


async def handle_post(request: web.Request) -> web.Response:
    LOGGER.info("Received one post request")
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise MalformedInput(f"Request body is not valid JSON: {exc}") from exc
    post = Post.from_dict(payload)

    result = await request.app[SERVICE_KEY].ingest(post)
    headers = {"X-Post-Accepted": "true" if result.accepted else "false"}
    if result.stored_id:
        headers["X-Post-Id"] = result.stored_id
    return web.Response(text=f"Post received: {post.message}\n", headers=headers)


async def handle_search(request: web.Request) -> web.Response:
    lat = _query_float(request, "lat", required=True)
    lon = _query_float(request, "lon", required=True)
    range_km = _query_float(request, "range", required=False)
    center = Location.from_values(lat, lon)
    LOGGER.info("Search received: %s %s %s", center.lat, center.lon, range_km)

    result = await request.app[SERVICE_KEY].search(center, range_km)
    return web.json_response(
        result.to_list(),
        headers={"Access-Control-Allow-Origin": "*"},
    )


def _install_reload_handler(app: web.Application, service: AroundService) -> None:
    words_file = app[SETTINGS_KEY].filter.words_file
    if not words_file or not hasattr(signal, "SIGHUP"):
        return

    def _reload() -> None:
        try:
            service.lexicon.reload_from_file(words_file)
        except OSError:
            LOGGER.exception("Failed to reload spam lexicon from %s", words_file)

    try:
        asyncio.get_running_loop().add_signal_handler(signal.SIGHUP, _reload)
    except (NotImplementedError, RuntimeError):
        LOGGER.warning("SIGHUP lexicon reload is not supported on this platform")


def create_app(
    settings: Settings | None = None,
    *,
    storage: AbstractStorage | None = None,
    lexicon: LexiconRegistry | None = None,
) -> web.Application:
    settings = settings or Settings()
    app = web.Application(middlewares=[error_middleware])
    app[SETTINGS_KEY] = settings

    async def on_startup(app: web.Application) -> None:
        service = AroundService(
            storage=storage or build_storage(settings.store),
            lexicon=lexicon or build_lexicon(settings.filter),
            store_config=settings.store,
            search_config=settings.search,
        )
        app[SERVICE_KEY] = service
        await service.bootstrap()
        _install_reload_handler(app, service)
        LOGGER.info(
            "Service started (index: %s, default range: %skm, lexicon: %s words)",
            settings.store.index,
            settings.search.default_range_km,
            len(service.lexicon.current()),
        )

    async def on_cleanup(app: web.Application) -> None:
        service = app.get(SERVICE_KEY)
        if service is not None:
            await service.storage.close()

    app.on_startup.append(on_startup)
    app.on_cleanup.append(on_cleanup)
    app.router.add_post("/post", handle_post)
    app.router.add_get("/search", handle_search)
    return app


def main() -> None:
    settings = load_settings()
    logging.basicConfig(level=getattr(logging, settings.server.log_level, logging.INFO))
    web.run_app(create_app(settings), host=settings.server.host, port=settings.server.port)


if __name__ == "__main__":
    main()
