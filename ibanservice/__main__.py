"""Process bootstrap: ``python -m ibanservice <port> <dburl> [<env> <keenProjectID> <keenWriteAPIKey>]``."""

import logging
import sys

import uvicorn

from ibanservice.config import Settings
from ibanservice.main import create_app

logger = logging.getLogger("ibanservice")


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    try:
        config = Settings.from_argv(args)
    except ValueError as e:
        print(e)
        return 2

    logger.info("Setting env to %s", config.environment)
    app = create_app(config)
    uvicorn.run(app, host=config.host, port=config.port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
