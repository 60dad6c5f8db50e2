"""Run the server: ``python -m app [ROOT]``."""

import os
import sys

import uvicorn


def main() -> None:
    """Start uvicorn, optionally overriding SEARCH_ROOT with the first argument."""
    if len(sys.argv) > 1:
        os.environ["SEARCH_ROOT"] = sys.argv[1]

    from app.config import get_settings

    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
