import json
import unittest

from aiohttp import web
from aiohttp.test_utils import make_mocked_request

from luckybet.inc.cookies import Cookie
from luckybet.inc.errors import NotFoundError
from luckybet.inc.sessions import SessionStore
from luckybet.inc.webserver import Request, Response, Router, session_middleware


def body_of(resp):
    return json.loads(resp.body)


class ResponseTests(unittest.TestCase):
    def setUp(self):
        raw = make_mocked_request("GET", "/x", headers={"Origin": "https://app.example"})
        self.res = Response(Request(raw, None))

    def test_send_once(self):
        resp = self.res.send(200, "ok", {"a": 1})
        self.assertEqual(body_of(resp), {"message": "ok", "payload": {"a": 1}})
        with self.assertRaises(RuntimeError):
            self.res.send(200, "again")

    def test_cookies_accumulate(self):
        first = Cookie("a", "1")
        self.res.set_cookie(first)
        self.res.set_cookie(Cookie("b", "2"))
        self.res.set_cookie(first)
        resp = self.res.send(200, "ok")
        self.assertEqual(sorted(resp.cookies), ["a", "b"])
        self.assertEqual(resp.cookies["a"].value, "1")
        self.assertEqual(resp.cookies["a"]["path"], "/")
        self.assertEqual(resp.cookies["a"]["samesite"], "Lax")
        self.assertTrue(resp.cookies["a"]["httponly"])
        self.assertEqual(resp.cookies["a"]["expires"], "Thu, 01 Jan 1970 00:00:00 GMT")

    def test_cors_echoes_origin(self):
        resp = self.res.send(200, "ok")
        self.assertEqual(resp.headers["Access-Control-Allow-Origin"], "https://app.example")
        self.assertEqual(resp.headers["Access-Control-Allow-Credentials"], "true")


class RouterTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.store = SessionStore()
        self.router = Router(self.store)

    async def test_handler_that_sends_nothing(self):
        async def silent(req, res):
            return None

        self.router.get("/silent", silent, allow_public=True)
        resp = await self.router.dispatch(make_mocked_request("GET", "/silent"))
        self.assertEqual(resp.status, 500)

    async def test_unexpected_exception_is_hidden(self):
        async def broken(req, res):
            raise KeyError("secret detail")

        self.router.get("/broken", broken, allow_public=True)
        resp = await self.router.dispatch(make_mocked_request("GET", "/broken"))
        self.assertEqual(resp.status, 500)
        self.assertEqual(body_of(resp), {"message": "Internal server error"})

    async def test_typed_error_maps_to_status(self):
        async def missing(req, res):
            raise NotFoundError("User not found")

        self.router.get("/missing", missing, allow_public=True)
        resp = await self.router.dispatch(make_mocked_request("GET", "/missing"))
        self.assertEqual(resp.status, 404)
        self.assertEqual(body_of(resp), {"message": "User not found"})

    async def test_exact_match_only(self):
        async def ok(req, res):
            res.send(200, "ok")

        self.router.post("/play", ok, allow_public=True)
        resp = await self.router.dispatch(make_mocked_request("GET", "/play"))
        self.assertEqual(resp.status, 404)
        resp = await self.router.dispatch(make_mocked_request("POST", "/play/"))
        self.assertEqual(resp.status, 404)
        resp = await self.router.dispatch(make_mocked_request("POST", "/play"))
        self.assertEqual(resp.status, 200)

    async def test_session_is_attached(self):
        seen = {}

        async def whoami(req, res):
            seen["user"] = req.user_id
            res.send(200, "ok")

        self.router.get("/me", whoami)
        session = self.store.create(user_id=42)
        raw = make_mocked_request("GET", "/me", headers={"Cookie": f"session_id={session.id}"})
        resp = await self.router.dispatch(raw)
        self.assertEqual(resp.status, 200)
        self.assertEqual(seen["user"], 42)
        self.assertEqual(resp.cookies["session_id"].value, session.id)

    async def test_anonymous_session_is_not_authenticated(self):
        async def private(req, res):
            res.send(200, "ok")

        self.router.get("/private", private)
        session = self.store.create()
        raw = make_mocked_request("GET", "/private", headers={"Cookie": f"session_id={session.id}"})
        resp = await self.router.dispatch(raw)
        self.assertEqual(resp.status, 401)

    async def test_session_from_middleware_is_used(self):
        seen = {}

        async def whoami(req, res):
            seen["user"] = req.user_id
            res.send(200, "ok")

        self.router.get("/me", whoami)
        session = self.store.create(user_id=7)
        raw = make_mocked_request("GET", "/me")
        raw["session"] = session
        resp = await self.router.dispatch(raw)
        self.assertEqual(resp.status, 200)
        self.assertEqual(seen["user"], 7)


class SessionMiddlewareTests(unittest.IsolatedAsyncioTestCase):
    async def test_resolves_cookie_into_request(self):
        store = SessionStore()
        session = store.create(user_id=3)
        seen = {}

        async def handler(request):
            seen["session"] = request["session"]
            return web.Response(text="ok")

        middleware = session_middleware(store)
        await middleware(make_mocked_request("GET", "/", headers={"Cookie": f"session_id={session.id}"}), handler)
        self.assertIs(seen["session"], session)
        await middleware(make_mocked_request("GET", "/"), handler)
        self.assertIsNone(seen["session"])


if __name__ == "__main__":
    unittest.main()
