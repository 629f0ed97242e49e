# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Bareforge Contributors

"""Process entry point: validate configuration, then serve the forge API."""

import sys

import uvicorn

from bareforge.config import ConfigurationError, get_settings


def main() -> None:
    try:
        settings = get_settings()
    except ConfigurationError as exc:
        sys.exit(f"bareforge: {exc}")

    # Logging is configured by the application lifespan.
    uvicorn.run(
        "bareforge.main:app",
        host=settings.host,
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
