import asyncio
import logging

from viewerlog.shared.database import DatabaseManager, PoolConfig
from viewerlog.shared.migrations import MigrationRunner
from viewerlog.twitch.core.bot import Bot
from viewerlog.twitch.core.config import validate_env_vars
from viewerlog.twitch.core.health_server import HealthCheckServer
from viewerlog.twitch.core.logging import setup_logging
from viewerlog.twitch.core.subscriptions import get_channel_subscriptions

LOGGER: logging.Logger = logging.getLogger("Bot")


def main() -> None:
    setup_logging()
    settings = validate_env_vars()
    setup_logging(settings.log_level)

    async def runner() -> None:
        database = DatabaseManager(
            settings.database_url, PoolConfig(ssl=settings.database_ssl or None)
        )
        await database.connect()

        try:
            applied = await MigrationRunner(database.pool).run_pending()
            if applied:
                LOGGER.info(f"Applied migrations: {', '.join(applied)}")

            subs = get_channel_subscriptions(settings.broadcaster_id, settings.bot_id)
            LOGGER.info(f"Starting bot with {len(subs)} initial subscriptions")

            async with Bot(settings=settings, pool=database.pool, subs=subs) as bot:
                health = HealthCheckServer(
                    bot, database, host=settings.health_host, port=settings.health_port
                )
                await health.start()
                try:
                    await bot.start()
                finally:
                    await health.stop()
        finally:
            await database.disconnect()

    try:
        asyncio.run(runner())
    except KeyboardInterrupt:
        LOGGER.warning("Shutting down due to KeyboardInterrupt...")


if __name__ == "__main__":
    main()
