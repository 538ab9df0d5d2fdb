# luckybet/webmods/auth.py
from __future__ import annotations
from luckybet.inc.errors import NotFoundError
from luckybet.inc.webserver import Request, Response, route, run_blocking


def _start_session(req: Request, res: Response, user_id: int) -> None:
    store = req.services.store
    # a fresh id on every login, never an upgraded anonymous one
    if req.session is not None:
        store.destroy(req.session)
    session = store.create(user_id=user_id)
    req.session = session
    res.set_cookie(session.cookie)


@route("POST", "/register", allow_public=True)
async def register(req: Request, res: Response):
    body = await req.json()
    user = await run_blocking(
        req.services.credentials.register,
        body.get("username"), body.get("email"), body.get("password"),
    )
    _start_session(req, res, user.id)
    res.send(201, "User registered", user.public())


@route("POST", "/login", allow_public=True)
async def login(req: Request, res: Response):
    body = await req.json()
    user = await run_blocking(req.services.credentials.login, body.get("email"), body.get("password"))
    _start_session(req, res, user.id)
    res.send(200, "Logged in", user.public())


@route("POST", "/auth/logout")
async def logout(req: Request, res: Response):
    req.services.credentials.logout(req.session)
    req.services.store.destroy(req.session)
    res.set_cookie(req.session.cookie)
    res.send(200, "Logged out")


@route("GET", "/profile")
async def profile(req: Request, res: Response):
    user = await run_blocking(req.services.credentials.get_profile, req.user_id)
    if user is None:
        raise NotFoundError("User not found")
    res.send(200, "Profile", user.profile())


@route("PUT", "/user/password")
async def update_password(req: Request, res: Response):
    body = await req.json()
    await run_blocking(
        req.services.credentials.update_password,
        req.user_id, body.get("currentPassword"), body.get("newPassword"),
    )
    res.send(200, "Password updated")


@route("PUT", "/user/profile")
async def update_profile(req: Request, res: Response):
    body = await req.json()
    user = await run_blocking(
        req.services.credentials.update_profile,
        req.user_id, body.get("name"), body.get("email"),
    )
    res.send(200, "Profile updated", user.profile())
