"""Run the chat relay with uvicorn.

    python -m chatr.main            # HOST / PORT from settings (.env)
    chatr --port 8080               # console script
"""
import argparse

import uvicorn

from chatr.configs.settings import settings


def main(argv=None):
    parser = argparse.ArgumentParser(prog="chatr", description="Chat relay for agent clients")
    parser.add_argument("--host", default=settings.HOST)
    parser.add_argument("--port", type=int, default=settings.PORT)
    parser.add_argument("--reload", action="store_true", help="Reload on code changes (development)")
    args = parser.parse_args(argv)

    uvicorn.run(
        "chatr.server.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
