# luckybet/webmods/user.py
from __future__ import annotations
from luckybet.inc.webserver import Request, Response, route, run_blocking


@route("POST", "/user/balance")
async def set_balance(req: Request, res: Response):
    body = await req.json()
    balance = await run_blocking(req.services.credentials.set_balance, req.user_id, body.get("balance"))
    res.send(200, "Balance updated", {"balance": balance})


@route("GET", "/leaderboard", allow_public=True)
async def leaderboard(req: Request, res: Response):
    rows = await run_blocking(req.services.credentials.leaderboard, req.services.leaderboard_size)
    res.send(200, "Leaderboard", rows)
