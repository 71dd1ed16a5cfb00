"""
MoneyMinder API Server

Entry point for running the HTTP API:

    python -m app.main
    uvicorn app.main:app --reload

Configuration comes from the environment (and .env). AUTH_JWT_SECRET is
required; email falls back to logging and the advice chat is disabled when
their settings are missing.
"""

import uvicorn

from moneyminder.api import create_app
from moneyminder.audit import configure_logging
from moneyminder.config import get_settings, validate_all_settings


settings = get_settings()
configure_logging(settings.app.log_level)

app = create_app()


def main() -> None:
    status = validate_all_settings()
    for name, ok in status.items():
        if name.endswith("_error"):
            continue
        print(f"{'OK ' if ok else '-- '} {name}")

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.app.debug_mode,
    )


if __name__ == "__main__":
    main()
