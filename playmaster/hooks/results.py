"""Posting the run summary to a webhook."""

import asyncio
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import aiohttp

from playmaster.hooks.base import Hook, HookContext, HookError, HookType
from playmaster.models.config import WebhookConfig
from playmaster.state import Results

log = logging.getLogger(__name__)

TEMPLATE_VAR_RE = re.compile(r"\{\{\s*(\w+)\s*\}\}")
REQUEST_TIMEOUT = 30.0


def template_vars(results: Results, logs_url: str = "") -> Mapping[str, str]:
    """Values available to ``message_template`` placeholders."""
    status = "Failed" if results.has_failures else "Passed"
    data = results.to_dict()
    return {
        "passed": str(results.passed),
        "failed": str(results.failed),
        "total": str(results.total),
        "start_time": data["start_time"],
        "end_time": data["end_time"],
        "errors": "\n".join(results.error),
        "status": status,
        "status_icon": "✅" if status == "Passed" else "❌",
        "logs_url": logs_url,
    }


def render_template(template: str, values: Mapping[str, str]) -> str:
    """Substitute ``{{name}}`` placeholders, leaving unknown ones as written."""

    def _replace(match: re.Match[str]) -> str:
        return values.get(match.group(1), match.group(0))

    return TEMPLATE_VAR_RE.sub(_replace, template)


def default_message(results: Results, logs_url: str = "") -> str:
    values = template_vars(results, logs_url)
    return (
        "Test Run Completed:\n"
        f"✅ Passed: {values['passed']}\n"
        f"❌ Failed: {values['failed']}\n"
        f"📋 Total: {values['total']}\n"
        f"Start Time: {values['start_time']}\n"
        f"End Time: {values['end_time']}\n"
        f"Logs: {logs_url}\n"
        f"Errors: {values['errors']}"
    )


@dataclass(frozen=True, kw_only=True)
class ResultsWebhook(Hook):
    """Reports the results of the run, even after failures."""

    config: WebhookConfig

    def get_type(self) -> HookType:
        return HookType.FINISHED

    def continue_on_error(self) -> bool:
        return True

    def message(self, results: Results, logs_url: str = "") -> str:
        if self.config.message_template:
            return render_template(
                self.config.message_template, template_vars(results, logs_url)
            )
        return default_message(results, logs_url)

    def payload(self, results: Results, logs_url: str = "") -> dict[str, Any]:
        return {
            "text": self.message(results, logs_url),
            "results": results.to_dict(),
            "logs_url": logs_url,
        }

    def run(self, ctx: HookContext) -> None:
        if not self.config.url:
            log.info("No webhook URL configured, skipping webhook call")
            return

        log.info("Calling webhook %s...", self.config.url)
        asyncio.run(self.send(ctx.state.results()))
        log.info("Webhook called successfully")

    async def send(self, results: Results) -> None:
        """Post the summary.

        Raises:
            HookError: If the request fails or the webhook rejects it,
                unless errors are ignored by configuration

        """
        payload = self.payload(results)
        log.debug("Webhook message: %s", payload["text"])

        timeout = aiohttp.ClientTimeout(total=REQUEST_TIMEOUT)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.config.url, json=payload) as response:
                    if response.status < 300:
                        return
                    text = await response.text()
                    status = response.status
        except (aiohttp.ClientError, TimeoutError) as e:
            raise HookError(f"Failed to send webhook message: {e}") from e

        if self.config.ignore_error:
            log.info(
                "Webhook API returned error status %s, ignored by configuration",
                status,
            )
            return
        raise HookError(f"Webhook API returned error status: {status} {text}")
