"""Tests for the results webhook hook."""

from datetime import UTC, datetime

import pytest
from aioresponses import aioresponses
from yarl import URL

from playmaster.hooks.base import HookContext, HookError
from playmaster.hooks.results import ResultsWebhook, render_template
from playmaster.testing.factories import ResultsFactory, WebhookConfigFactory

WEBHOOK_URL = "http://webhook.test/notify"


def record_run(ctx: HookContext) -> None:
    ctx.state.increment_passed()
    ctx.state.increment_passed()
    ctx.state.increment_failed()
    ctx.state.finalize_results(
        total=3,
        start_time=datetime(2026, 1, 1, 12, 0, tzinfo=UTC),
        end_time=datetime(2026, 1, 1, 12, 5, tzinfo=UTC),
        full_log="00:01 +0 -0: A\n",
    )


def test_render_template_substitutes_known_values() -> None:
    """Known placeholders are replaced and unknown ones kept."""
    rendered = render_template(
        "{{status_icon}} {{ passed }}/{{total}} {{unknown}}",
        {"status_icon": "✅", "passed": "2", "total": "2"},
    )

    assert rendered == "✅ 2/2 {{unknown}}"


def test_message_uses_template() -> None:
    """The configured template is filled from the results."""
    hook = ResultsWebhook(
        config=WebhookConfigFactory.build(
            message_template="{{status}}: {{failed}} failed\n{{errors}}"
        )
    )
    results = ResultsFactory.build(passed=1, failed=1, total=2, error=["[x] y: z"])

    assert hook.message(results) == "Failed: 1 failed\n[x] y: z"


def test_default_message_summarises_run() -> None:
    """Without a template a summary is produced."""
    hook = ResultsWebhook(config=WebhookConfigFactory.build())
    results = ResultsFactory.build(passed=4, failed=0, total=4, error=[])

    message = hook.message(results)

    assert message.startswith("Test Run Completed:")
    assert "✅ Passed: 4" in message
    assert "📋 Total: 4" in message


def test_hook_is_tolerant_finished_hook() -> None:
    """Reporting runs after failures."""
    hook = ResultsWebhook(config=WebhookConfigFactory.build())

    assert hook.continue_on_error()
    assert hook.get_type() == "finished"


def test_posts_results(ctx: HookContext, mock_aioresponses: aioresponses) -> None:
    """The summary and results are posted as JSON."""
    record_run(ctx)
    mock_aioresponses.post(WEBHOOK_URL, status=200)

    ResultsWebhook(config=WebhookConfigFactory.build(url=WEBHOOK_URL)).run(ctx)

    call = mock_aioresponses.requests[("POST", URL(WEBHOOK_URL))][0]
    payload = call.kwargs["json"]
    assert payload["results"]["passed"] == 2
    assert payload["results"]["failed"] == 1
    assert payload["results"]["start_time"] == "2026-01-01T12:00:00+00:00"
    assert payload["logs_url"] == ""
    assert "❌ Failed: 1" in payload["text"]


def test_error_status_fails_hook(
    ctx: HookContext, mock_aioresponses: aioresponses
) -> None:
    """A rejected webhook call fails the hook."""
    mock_aioresponses.post(WEBHOOK_URL, status=500, body="down")

    with pytest.raises(HookError, match="500"):
        ResultsWebhook(config=WebhookConfigFactory.build(url=WEBHOOK_URL)).run(ctx)


def test_error_status_can_be_ignored(
    ctx: HookContext, mock_aioresponses: aioresponses
) -> None:
    """With ignore_error a rejected call is only logged."""
    mock_aioresponses.post(WEBHOOK_URL, status=502)

    ResultsWebhook(
        config=WebhookConfigFactory.build(url=WEBHOOK_URL, ignore_error=True)
    ).run(ctx)


def test_empty_url_skips_call(
    ctx: HookContext, mock_aioresponses: aioresponses
) -> None:
    """Nothing is sent without a URL."""
    ResultsWebhook(config=WebhookConfigFactory.build(url="")).run(ctx)

    assert mock_aioresponses.requests == {}
