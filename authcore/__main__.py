# authcore/__main__.py

import uvicorn

from authcore.adapters.configuration.config import settings


def run():
    """Serve ``authcore.main:app`` with the configured host and port."""
    uvicorn.run(
        "authcore.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
        reload=settings.DEBUG,
    )


if __name__ == "__main__":
    run()

# Usage: python -m authcore  (or the `authcore` console script)
