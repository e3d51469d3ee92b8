"""Run the companion services API: ``python -m companion``."""

import uvicorn

from companion.shared.config import load_config


def main() -> None:
    config = load_config()
    uvicorn.run(
        "companion.api.app:app",
        host=config.api_host,
        port=config.api_port,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
