import uvicorn

from app.core.config import settings
from app.core.logging import configure_logging


def main():
    """Main entry point to run the application."""
    configure_logging(settings.log_level)
    uvicorn.run(
        "app.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        reload=not settings.is_production,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
