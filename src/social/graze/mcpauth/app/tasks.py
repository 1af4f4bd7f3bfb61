import asyncio
import logging
from time import time
from typing import Dict, NoReturn

from aiohttp import web
import sentry_sdk

from social.graze.mcpauth.app.config import (
    CodeStoreAppKey,
    HealthGaugeAppKey,
    MetricsClientAppKey,
    SettingsAppKey,
    TokenStoreAppKey,
    UserTokenStoreAppKey,
)
from social.graze.mcpauth.app.metrics import MetricsClient
from social.graze.mcpauth.auth.user_tokens import UserTokenStore
from social.graze.mcpauth.oauth.codes import CodeStore
from social.graze.mcpauth.oauth.tokens import TokenStore

logger = logging.getLogger(__name__)


async def run_cleanup(
    codes: CodeStore,
    tokens: TokenStore,
    user_tokens: UserTokenStore,
    metrics_client: MetricsClient,
) -> Dict[str, int]:
    """
    Delete expired authorization codes, token ledger rows and static tokens.

    Correctness never depends on this running: every read already excludes expired rows.
    """
    start_time = time()

    deleted_tokens = await tokens.cleanup_expired()
    deleted = {
        "codes": await codes.cleanup_expired(),
        "access": deleted_tokens["access"],
        "refresh": deleted_tokens["refresh"],
        "user_tokens": await user_tokens.cleanup_expired(),
    }

    for kind, count in deleted.items():
        metrics_client.gauge("mcpauth.cleanup.deleted", count, tag_dict={"kind": kind})
    metrics_client.timer("mcpauth.cleanup.time", time() - start_time)

    logger.info("expired row cleanup: %s", deleted)
    return deleted


async def cleanup_task(app: web.Application) -> NoReturn:
    """
    Periodically delete expired rows. Failures are reported and retried next interval.
    """

    logger.info("Starting cleanup task")

    settings = app[SettingsAppKey]
    health_gauge = app[HealthGaugeAppKey]
    metrics_client = app[MetricsClientAppKey]

    while True:
        try:
            await run_cleanup(
                app[CodeStoreAppKey],
                app[TokenStoreAppKey],
                app[UserTokenStoreAppKey],
                metrics_client,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("cleanup error")
            sentry_sdk.capture_exception(e)
            metrics_client.increment(
                "mcpauth.cleanup.exception",
                1,
                tag_dict={"exception": type(e).__name__},
            )
            await health_gauge.womp("cleanup")

        await asyncio.sleep(settings.cleanup_interval)


async def tick_health_task(app: web.Application) -> NoReturn:
    """
    Tick the health gauge every 30 seconds, reducing the health score by 1 each time.
    """

    logger.info("Starting health gauge task")

    health_gauge = app[HealthGaugeAppKey]
    while True:
        await health_gauge.tick()
        await asyncio.sleep(30)
