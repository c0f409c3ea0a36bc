import argparse
import asyncio

import uvicorn

from proctor.config import settings
from proctor.logger import setup_logger

logger = setup_logger("proctor.launcher")


def main() -> None:
    parser = argparse.ArgumentParser(description="Proctored assessment session engine")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("serve", help="Run the HTTP session service (default)")

    kiosk = sub.add_parser("kiosk", help="Run one session in a local Chromium window")
    kiosk.add_argument("worker_id", help="Worker whose assigned test is started")
    kiosk.add_argument("--url", required=True, help="Renderer page to open")

    args = parser.parse_args()

    if args.command == "kiosk":
        from proctor.kiosk import run_kiosk

        logger.info(f"🖥️  Kiosk mode for worker {args.worker_id}")
        try:
            asyncio.run(run_kiosk(args.worker_id, args.url))
        except KeyboardInterrupt:
            logger.info("Stopped by user")
        return

    uvicorn.run(
        "proctor.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
