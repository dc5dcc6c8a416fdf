"""Entry point for the FastAPI-powered Emby to TVBox bridge."""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Callable, TypeVar

import httpx
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from .auth import AccessGuard, SessionInfo
from .config import Settings, settings
from .database import Database
from .errors import BadRequest, ConfigUnavailable, Unauthorized, UpstreamUnavailable
from .models import EmbyConfig, VodResponse
from .services.catalog import CatalogTranslator
from .services.config_cache import ConfigCache
from .services.config_store import ConfigStore
from .services.emby import EmbyClient
from .services.stream_proxy import StreamProxy
from .utils import resolve_site_base

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

CMS_ACTIONS = frozenset({"videolist", "list", "detail"})

T = TypeVar("T")


def catalog_client_factory() -> httpx.AsyncClient:
    # One connection per catalog request, no pooling and no timeout.
    return httpx.AsyncClient(timeout=None)


app: FastAPI


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    database = Database(settings.database_url)
    await database.create_all()

    config_store = ConfigStore(database.session_factory)
    await config_store.seed_from_settings(settings)
    config_cache = ConfigCache(config_store.load, ttl_ms=settings.config_cache_ttl_ms)

    fastapi_app.state.database = database
    fastapi_app.state.catalog_client_factory = catalog_client_factory
    fastapi_app.state.config_store = config_store
    fastapi_app.state.config_cache = config_cache
    fastapi_app.state.stream_proxy = StreamProxy(config_cache)

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await database.dispose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Serves an Emby library to TVBox clients as a CMS source",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "PUT"],
        allow_headers=["*"],
    )

    fastapi_app.state.settings = settings
    fastapi_app.state.access_guard = AccessGuard(settings)

    register_routes(fastapi_app)
    return fastapi_app


def _require_state(fastapi_app: FastAPI, name: str, expected: type[T]) -> T:
    value = getattr(fastapi_app.state, name, None)
    if not isinstance(value, expected):
        raise RuntimeError(f"{name} not initialised")
    return value


def get_settings_for(fastapi_app: FastAPI) -> Settings:
    return getattr(fastapi_app.state, "settings", None) or settings


def get_access_guard(fastapi_app: FastAPI) -> AccessGuard:
    return _require_state(fastapi_app, "access_guard", AccessGuard)


def get_config_store(fastapi_app: FastAPI) -> ConfigStore:
    return _require_state(fastapi_app, "config_store", ConfigStore)


def get_config_cache(fastapi_app: FastAPI) -> ConfigCache:
    return _require_state(fastapi_app, "config_cache", ConfigCache)


def get_stream_proxy(fastapi_app: FastAPI) -> StreamProxy:
    return _require_state(fastapi_app, "stream_proxy", StreamProxy)


def get_catalog_client_factory(fastapi_app: FastAPI) -> Callable[[], httpx.AsyncClient]:
    return getattr(fastapi_app.state, "catalog_client_factory", None) or catalog_client_factory


def _cms_response(payload: VodResponse) -> JSONResponse:
    return JSONResponse(payload.to_payload())


def register_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.exception_handler(Unauthorized)
    async def _unauthorized(_: Request, exc: Unauthorized) -> JSONResponse:
        return JSONResponse({"error": "未授权"}, status_code=401)

    def _require_session(request: Request) -> SessionInfo:
        guard = get_access_guard(fastapi_app)
        session = guard.session_user(request.cookies.get(guard.cookie_name))
        if session is None:
            raise Unauthorized("login required")
        return session

    async def _catalog_payload(
        request: Request,
        token: str,
        ac: str,
        wd: str | None,
        ids: str | None,
    ) -> VodResponse:
        store = get_config_store(fastapi_app)
        config = await store.load()
        if config is None or not config.is_usable:
            return VodResponse.empty(0, "Emby 未配置或未启用")

        async with get_catalog_client_factory(fastapi_app)() as http_client:
            return await _query_catalog(
                request, EmbyClient(http_client, config), config, token, ac, wd, ids
            )

    async def _query_catalog(
        request: Request,
        client: EmbyClient,
        config: EmbyConfig,
        token: str,
        ac: str,
        wd: str | None,
        ids: str | None,
    ) -> VodResponse:
        if not config.user_id and config.username and config.password:
            result = await client.authenticate(config.username, config.password)
            await get_config_store(fastapi_app).remember_user_id(
                result.user_id, result.access_token
            )
            logger.info("Resolved Emby user %s for %s", result.user_id, config.username)

        if not client.user_id:
            return VodResponse.empty(0, "Emby 认证失败")

        translator = CatalogTranslator(client)
        base_url = resolve_site_base(
            request.headers, get_settings_for(fastapi_app).site_base_url
        )

        if wd:
            if ac == "detail":
                return await translator.detail_by_search(wd, token, base_url)
            return await translator.search(wd)
        if ids or ac == "detail":
            if not ids:
                raise BadRequest("缺少视频ID")
            return await translator.detail_by_id(ids, token, base_url)
        return await translator.search("")

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/api/emby/cms-proxy/{token}")
    async def cms_proxy(
        request: Request,
        token: str,
        ac: str | None = None,
        wd: str | None = None,
        ids: str | None = None,
    ) -> JSONResponse:
        if ac not in CMS_ACTIONS:
            return JSONResponse({"code": 400, "msg": "不支持的操作"}, status_code=400)

        if not get_access_guard(fastapi_app).token_matches(token):
            return _cms_response(VodResponse.empty(401, "无效的访问token"))

        try:
            payload = await _catalog_payload(request, token, ac, wd, ids)
        except BadRequest as exc:
            payload = VodResponse.empty(0, str(exc))
        except UpstreamUnavailable as exc:
            logger.warning("Emby unavailable for CMS request: %s", exc)
            payload = VodResponse.empty(0, str(exc))
        except Exception as exc:
            logger.exception("CMS proxy request failed")
            payload = VodResponse.empty(500, str(exc))
        return _cms_response(payload)

    @fastapi_app.get("/api/emby/play/{token}/{filename}", response_model=None)
    async def play(
        request: Request,
        token: str,
        filename: str,
        item_id: str | None = Query(default=None, alias="itemId"),
    ) -> StreamingResponse | JSONResponse:
        guard = get_access_guard(fastapi_app)
        if not guard.authorize(token, request.cookies.get(guard.cookie_name)):
            raise Unauthorized("subscribe token or login required")

        if not item_id:
            return JSONResponse({"error": "缺少 itemId 参数"}, status_code=400)

        proxy = get_stream_proxy(fastapi_app)
        try:
            upstream = await proxy.open(
                item_id,
                filename=filename,
                range_header=request.headers.get("range"),
            )
        except ConfigUnavailable as exc:
            logger.error("Emby playback unavailable: %s", exc)
            return JSONResponse(
                {"error": "播放失败", "details": str(exc)}, status_code=500
            )
        except UpstreamUnavailable:
            return JSONResponse({"error": "获取视频流失败"}, status_code=500)
        except Exception as exc:
            logger.exception("Emby playback failed for %s", item_id)
            return JSONResponse(
                {"error": "播放失败", "details": str(exc)}, status_code=500
            )

        return StreamingResponse(
            upstream.iter_bytes(),
            status_code=upstream.status_code,
            headers=upstream.headers,
        )

    @fastapi_app.get("/api/admin/emby")
    async def read_emby_config(request: Request) -> JSONResponse:
        _require_session(request)
        config = await get_config_store(fastapi_app).load() or EmbyConfig()
        return JSONResponse(config.masked())

    @fastapi_app.put("/api/admin/emby")
    async def update_emby_config(request: Request) -> JSONResponse:
        user = _require_session(request)

        try:
            payload = await request.json()
        except json.JSONDecodeError:
            payload = None
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Invalid payload")

        try:
            update = EmbyConfig.model_validate(payload)
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=exc.errors()) from exc

        store = get_config_store(fastapi_app)
        current = await store.load() or EmbyConfig()
        changes: dict[str, Any] = {
            name: getattr(update, name) for name in update.model_fields_set
        }
        saved = await store.save(current.model_copy(update=changes))
        logger.info("Emby configuration updated by %s", user.username)

        if saved.is_usable and saved.credential:
            await get_config_cache(fastapi_app).refresh()
        return JSONResponse(saved.masked())


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
