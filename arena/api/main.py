"""
HTTP server entrypoint for the image arena.

Architectural role:
- Configures process-wide logging from `LOG_LEVEL`.
- Runs `arena.api.http_api:app` under uvicorn on `HOST`/`PORT`.

Side effects:
- The engine (providers, orchestrator, store connection) is built by the
  application lifespan hook, not at import of this module.
"""

import logging

import uvicorn

from arena import config


def main():
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run("arena.api.http_api:app", host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    main()
