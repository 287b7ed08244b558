# =======================================================================================
# keytrack/run.py - Development Server
# =======================================================================================
import uvicorn

from .config import config


def main() -> None:
    uvicorn.run(
        "keytrack.main:create_app",
        factory=True,
        host=config.API_HOST,
        port=config.API_PORT,
        reload=config.API_DEBUG,
        log_level="debug" if config.API_DEBUG else "info",
    )


if __name__ == "__main__":
    main()
