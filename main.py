"""Start the taskboard API with uvicorn."""

import uvicorn

from taskboard import config
from taskboard.logging import configure_logging


def run() -> None:
    configure_logging()
    uvicorn.run(
        "taskboard.main:app",
        host=config.HOST,
        port=config.PORT,
        log_level="info",
    )


if __name__ == "__main__":
    run()
