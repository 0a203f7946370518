"""
VidyaVaradhi - Main Entry Point
Runs the auth API with uvicorn.
"""

import uvicorn

from .config import get_settings
from .logging_config import setup_logging
from .web import create_app


def main():
    """Main entry point for VidyaVaradhi."""
    settings = get_settings()
    setup_logging(settings)
    app = create_app(settings)
    uvicorn.run(
        app,
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        log_config=None,
        proxy_headers=settings.TRUST_PROXY_HEADERS,
    )


if __name__ == "__main__":
    main()
