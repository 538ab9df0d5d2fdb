# -------
# LuckyBet server entry point
# -------

import asyncio
import sys

import luckybet
from luckybet.inc.logging import logger


async def _serve(server, host: str, port: int):
    await server.start(host, port)
    try:
        await asyncio.Event().wait()
    finally:
        await server.stop()


def start():
    try:
        server = luckybet.initialize()
        settings = server.services.settings
        host = settings.get("WEB.listen_host", "0.0.0.0")
        port = settings.get("WEB.listen_port", 3000, cast=int)
        asyncio.run(_serve(server, host, port))
    except KeyboardInterrupt:
        print("\nLuckyBet stopped by user.")
    except Exception as e:
        logger.exception("[boot] unhandled startup exception")
        print(f"Unhandled startup exception: {e}")
        sys.exit(1)


if __name__ == "__main__":
    start()
