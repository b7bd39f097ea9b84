"""Executable entrypoint for the session gateway."""

from __future__ import annotations

import logging

import uvicorn
from dotenv import load_dotenv

from config import gateway_config


def _init_logging(level_name: str) -> None:
    level = getattr(logging, level_name, logging.INFO)
    fmt = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"
    logging.basicConfig(level=level, format=fmt)
    logging.getLogger("wagateway").setLevel(level)

    # uvicorn loggers propagate to the root handler configured above
    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(logger_name).setLevel(level)


def main() -> None:
    load_dotenv()
    cfg = gateway_config()
    _init_logging(cfg.log_level)

    uvicorn.run(
        "wagateway.api:create_app",
        host=cfg.host,
        port=cfg.port,
        factory=True,
        workers=1,
        log_config=None,
    )


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    main()
