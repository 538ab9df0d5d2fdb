# luckybet/webmods/games.py
from __future__ import annotations
from luckybet.inc.webserver import Request, Response, route, run_blocking
from luckybet.modules.wagers import GAMES


@route("GET", "/games", allow_public=True)
async def list_games(_req: Request, res: Response):
    res.send(200, "Available games", list(GAMES))


@route("POST", "/play/coinflip")
async def coinflip(req: Request, res: Response):
    body = await req.json()
    result = await run_blocking(req.services.wagers.play_coinflip, req.user_id, body.get("guess"), body.get("amount"))
    res.send(200, "You win!" if result.win else "You lose!", result.payload())


@route("POST", "/play/roulette")
async def roulette(req: Request, res: Response):
    body = await req.json()
    result = await run_blocking(req.services.wagers.play_roulette, req.user_id, body.get("betType"), body.get("amount"))
    res.send(200, "You win!" if result.win else "You lose!", result.payload())


@route("POST", "/play/blackjack")
async def blackjack_action(req: Request, res: Response):
    body = await req.json()
    state = await req.services.blackjack.act(req.session, body.get("action"), body)
    res.send(200, state["message"] or "OK", state)


@route("GET", "/play/blackjack")
async def blackjack_state(req: Request, res: Response):
    state = await req.services.blackjack.state(req.session)
    res.send(200, "No round in progress" if state is None else "Current round", state)
