# luckybet/inc/webserver.py
from __future__ import annotations
import asyncio, contextlib, importlib, pkgutil
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from aiohttp import hdrs, web

from luckybet.inc.cookies import Cookie
from luckybet.inc.errors import AuthorizationError, InternalError, LuckyBetError, ValidationError
from luckybet.inc.jsonutil import to_jsonable
from luckybet.inc.logging import logger as log
from luckybet.inc.sessions import Session, SessionStore

CORS_METHODS = "OPTIONS, GET, POST, PUT, DELETE"
CORS_HEADERS = "Content-Type, Authorization"

Handler = Callable[["Request", "Response"], Awaitable[None]]


@dataclass
class APIRoute:
    method: str
    path: str
    handler: Handler
    allow_public: bool = False

_registry: List[APIRoute] = []

def route(method: str, path: str, *, allow_public: bool = False):
    method = method.upper()
    def deco(fn):
        _registry.append(APIRoute(method, path, fn, allow_public))
        return fn
    return deco

async def run_blocking(func, *args):
    return await asyncio.to_thread(func, *args)


def session_middleware(store: SessionStore):
    """Resolve the session cookie once per request into request["session"]."""
    @web.middleware
    async def _mw(request: web.Request, handler):
        request["session"] = store.resolve(request.cookies.get(store.cookie_name))
        return await handler(request)
    return _mw


# ---------- Request / Response envelope ----------
class Request:
    """One inbound call plus the session it resolved to (None when anonymous)."""

    def __init__(self, raw: web.Request, session: Optional[Session], services: Any = None):
        self.raw = raw
        self.session = session
        self.services = services
        self._body: Optional[Dict[str, Any]] = None

    @property
    def method(self) -> str:
        return self.raw.method

    @property
    def path(self) -> str:
        return self.raw.path

    @property
    def origin(self) -> Optional[str]:
        return self.raw.headers.get(hdrs.ORIGIN)

    @property
    def user_id(self) -> Optional[int]:
        return self.session.user_id if self.session else None

    async def json(self) -> Dict[str, Any]:
        """Parsed JSON object body; an empty body reads as {}."""
        if self._body is not None:
            return self._body
        if not self.raw.can_read_body:
            self._body = {}
            return self._body
        try:
            data = await self.raw.json()
        except ValueError:
            raise ValidationError("Malformed JSON body")
        if not isinstance(data, dict):
            raise ValidationError("JSON body must be an object")
        self._body = data
        return data


class Response:
    """
    Builds the single reply for a Request. Handlers call `send` exactly once;
    cookies added with `set_cookie` accumulate and are all emitted by it.
    """

    def __init__(self, request: Request):
        self.request = request
        self.cookies: List[Cookie] = []
        self._sent: Optional[web.StreamResponse] = None

    @property
    def sent(self) -> Optional[web.StreamResponse]:
        return self._sent

    def set_cookie(self, cookie: Cookie) -> None:
        # the same Cookie object is emitted once, in its state at send time
        if not any(c is cookie for c in self.cookies):
            self.cookies.append(cookie)

    def cors_headers(self) -> Dict[str, str]:
        # echo back the caller's Origin so credentials can be sent
        return {
            "Access-Control-Allow-Origin": self.request.origin or "*",
            "Access-Control-Allow-Credentials": "true",
            "Access-Control-Allow-Methods": CORS_METHODS,
            "Access-Control-Allow-Headers": CORS_HEADERS,
            "Vary": "Origin",
        }

    def _finish(self, resp: web.StreamResponse) -> web.StreamResponse:
        for cookie in self.cookies:
            resp.set_cookie(cookie.name, cookie.value, **cookie.attributes())
        self._sent = resp
        return resp

    def send(self, status: int, message: str, payload: Any = None) -> web.StreamResponse:
        if self._sent is not None:
            raise RuntimeError("response already sent")
        body: Dict[str, Any] = {"message": message}
        if payload is not None:
            body["payload"] = to_jsonable(payload)
        log.info("<<< %s %s %s", status, self.request.path, message)
        return self._finish(web.json_response(body, status=status, headers=self.cors_headers()))

    def preflight(self) -> web.StreamResponse:
        if self._sent is not None:
            raise RuntimeError("response already sent")
        return self._finish(web.Response(status=204, headers=self.cors_headers()))


# ---------- Router ----------
class Router:
    """Exact (method, path) dispatch with session resolution at the front door."""

    def __init__(self, store: SessionStore, services: Any = None):
        self.store = store
        self.services = services
        self._routes: Dict[Tuple[str, str], APIRoute] = {}

    def add(self, method: str, path: str, handler: Handler, *, allow_public: bool = False) -> None:
        key = (method.upper(), path)
        if key in self._routes:
            return
        self._routes[key] = APIRoute(key[0], path, handler, allow_public)

    def get(self, path: str, handler: Handler, **kw): self.add("GET", path, handler, **kw)
    def post(self, path: str, handler: Handler, **kw): self.add("POST", path, handler, **kw)
    def put(self, path: str, handler: Handler, **kw): self.add("PUT", path, handler, **kw)
    def delete(self, path: str, handler: Handler, **kw): self.add("DELETE", path, handler, **kw)

    def include(self, routes: List[APIRoute]) -> None:
        for r in routes:
            self.add(r.method, r.path, r.handler, allow_public=r.allow_public)

    def match(self, method: str, path: str) -> Optional[APIRoute]:
        return self._routes.get((method.upper(), path))

    def _resolve_session(self, raw: web.Request) -> Optional[Session]:
        return self.store.resolve(raw.cookies.get(self.store.cookie_name))

    async def dispatch(self, raw: web.Request) -> web.StreamResponse:
        log.info(">>> %s %s", raw.method, raw.path)
        # set by session_middleware when served through LuckyBetServer
        session = raw["session"] if "session" in raw else self._resolve_session(raw)
        req = Request(raw, session, self.services)
        res = Response(req)

        if raw.method == "OPTIONS":
            return res.preflight()

        route_obj = self.match(raw.method, raw.path)
        if route_obj is None:
            return res.send(404, "Not found")

        if not route_obj.allow_public:
            if session is None or not session.authenticated:
                denied = AuthorizationError()
                return res.send(denied.status, denied.message)
            # sliding expiry on every authenticated call
            self.store.refresh(session)
            res.set_cookie(session.cookie)

        try:
            await route_obj.handler(req, res)
        except LuckyBetError as exc:
            if res.sent is not None:
                log.warning("[web] %s raised after sending: %s", raw.path, exc.message)
                return res.sent
            return res.send(exc.status, exc.message)
        except Exception:
            log.exception("[web] unhandled error on %s %s", raw.method, raw.path)
            if res.sent is not None:
                return res.sent
            failure = InternalError()
            return res.send(failure.status, failure.message)

        if res.sent is None:
            log.error("[web] handler for %s %s sent no response", raw.method, raw.path)
            failure = InternalError()
            return res.send(failure.status, failure.message)
        return res.sent


# ---------- Server ----------
def _load_modules():
    import luckybet.webmods as pkg
    base = pkg.__name__
    for modinfo in pkgutil.iter_modules(pkg.__path__):
        fullname = f"{base}.{modinfo.name}"
        importlib.import_module(fullname)
        log.debug(f"[web] loaded module {fullname}")


class LuckyBetServer:
    def __init__(self, services, sweep_interval: float = 300.0):
        self.services = services
        self.sweep_interval = sweep_interval
        self.router = Router(services.store, services)
        _load_modules()
        self.router.include(_registry)

        self.app = web.Application(middlewares=[session_middleware(services.store)])
        self.app["services"] = services
        self.app.cleanup_ctx.append(self._background)
        self.app.router.add_route("*", "/{tail:.*}", self.router.dispatch)

        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    async def _sweep_loop(self):
        while True:
            await asyncio.sleep(self.sweep_interval)
            self.services.store.sweep()

    async def _background(self, _app: web.Application):
        task = asyncio.create_task(self._sweep_loop())
        yield
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        close = getattr(self.services.card_source, "close", None)
        if close is not None:
            await close()

    # ---------- Boot / Stop ----------
    async def start(self, host: str, port: int):
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, host, port)
        await self._site.start()
        log.info(f"[web] listening on {host}:{port}")

    async def stop(self):
        if self._runner:
            await self._runner.cleanup()
            self._runner, self._site = None, None
        log.info("[web] stopped")
