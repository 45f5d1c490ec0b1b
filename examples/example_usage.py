"""Example: drive the services directly, without any UI layer.

Needs a reachable backend at API_BASE_URL (see .env / APP_ENV).
"""

import asyncio

from school_attendance.config.logging_setup import configure_logging
from school_attendance.config.settings import load_settings
from school_attendance.container import build_container
from school_attendance.core.enums import Direction
from school_attendance.otc.codec import format_code


async def main():
    settings = load_settings()
    configure_logging(settings.log_level)
    container = build_container(settings)
    try:
        otc = await container.otc_manager.generate("1001")
        print("Code:", format_code(otc.code), "valid for", container.otc_manager.remaining(otc.expires_at).minutes, "min")

        event = await container.otc_manager.submit(otc.code, Direction.CHECK_IN)
        print("Recorded:", event.status.value, event.timestamp)
        print("Today:", container.dashboard.summary)
    finally:
        await container.aclose()


if __name__ == "__main__":
    asyncio.run(main())
