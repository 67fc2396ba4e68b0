"""Example: drive the session engine directly (no Flask).

Clocks in, takes a short break, watches the ticking display and clocks out.
"""

import asyncio
import importlib
import sys

from config import get_settings_module

from src.timetracker.timetracker.container import build_container
from src.timetracker.timetracker.core.logging import setup_logging


async def run(user_id: str) -> None:
    settings = importlib.import_module(get_settings_module())
    setup_logging(getattr(settings, "LOG_LEVEL", None))
    container = build_container(db_config=settings.DB_CONFIG)
    engine = container.session_engine

    await engine.load_today(user_id)
    await engine.start_session(user_id, "home")
    unsubscribe = engine.subscribe_elapsed(user_id, lambda display: print("worked", display))
    try:
        await asyncio.sleep(3)
        await engine.start_break(user_id, "coffee")
        await asyncio.sleep(2)
        await engine.end_break(user_id)
        await asyncio.sleep(2)
        result = await engine.stop_session(user_id)
        print("elapsed ms:", result.elapsed_ms, "warnings:", [str(e) for e in result.errors])
    finally:
        unsubscribe()
        engine.close()

    today = await container.attendance_service.today(user_id)
    print(today)


def main():
    asyncio.run(run(sys.argv[1] if len(sys.argv) > 1 else "demo-user"))


if __name__ == "__main__":
    main()
