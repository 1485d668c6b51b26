import asyncio

from core.config import settings
from core.logger import setup_logging, logger
from db.session import engine


async def start_api():
    import uvicorn
    from api.main import app
    config = uvicorn.Config(
        app,
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )
    server = uvicorn.Server(config)
    await server.serve()


async def main():
    # Setup structured logging
    setup_logging()

    # For scaling run 'uvicorn api.main:app --workers N' directly instead.
    logger.info("Starting play API...", env=settings.ENV, port=settings.API_PORT)
    try:
        await start_api()
    finally:
        await engine.dispose()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        logger.info("Application stopped.")
