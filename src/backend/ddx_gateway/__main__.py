"""Run the gateway under uvicorn: ``python -m ddx_gateway``."""
import uvicorn

from ddx_gateway.config import Settings


def main() -> None:
    settings = Settings()
    uvicorn.run(
        "ddx_gateway.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
