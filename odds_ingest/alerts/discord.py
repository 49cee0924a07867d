"""Discord webhook alerts for failed ingestion cycles."""

from __future__ import annotations

from datetime import datetime, timezone

import structlog
from discord_webhook import DiscordEmbed, DiscordWebhook

from odds_ingest.config import Settings
from odds_ingest.engine.pipeline import RunResult

log = structlog.get_logger()

FAILURE_COLOR = 0xE74C3C


class DiscordAlerter:
    def __init__(self, settings: Settings) -> None:
        self._url = settings.discord_webhook_url

    def send_run_failure(self, result: RunResult, leagues: list[str]) -> bool:
        """Post a failure embed. Returns False when no webhook is configured."""
        if not self._url:
            log.debug("discord_alert_skipped", reason="no_webhook")
            return False

        webhook = DiscordWebhook(url=self._url)
        embed = DiscordEmbed(
            title="Odds Ingestion Failed",
            description=result.error or "Unknown error",
            color=FAILURE_COLOR,
        )
        embed.add_embed_field(name="Leagues", value=", ".join(leagues) or "-", inline=True)
        embed.add_embed_field(name="Duration", value=f"{result.duration:.1f}s", inline=True)
        embed.add_embed_field(
            name="Events Fetched", value=str(result.events_processed), inline=True
        )
        embed.set_timestamp(datetime.now(timezone.utc).isoformat())
        embed.set_footer(text="Odds Ingest")
        webhook.add_embed(embed)
        resp = webhook.execute()

        if resp and hasattr(resp, "status_code") and resp.status_code < 400:
            log.info("discord_alert_sent")
            return True
        log.error("discord_alert_failed")
        return False
