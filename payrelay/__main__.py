"""Run the relay with uvicorn: ``python -m payrelay``."""

import uvicorn

from payrelay.config import settings


def main() -> None:
    uvicorn.run("payrelay.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
