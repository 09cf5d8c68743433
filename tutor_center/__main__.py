import logging

import uvicorn

from .app import configure_logging, create_app
from .config import settings

logger = logging.getLogger(__name__)


def main() -> None:
    configure_logging()
    # reload needs an import string rather than an app object
    target = "tutor_center.main:app" if settings.reload else create_app()
    try:
        uvicorn.run(target, host=settings.host, port=settings.port, reload=settings.reload)
    except OSError as exc:
        if "address already in use" in str(exc).lower():
            logger.error(f"Port {settings.port} is already in use. Stop the old process or set BACKEND_PORT.")
        raise


if __name__ == "__main__":
    main()
