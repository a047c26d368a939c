"""Discord webhook alerts."""
import json

import httpx

from legistrack.notifications import DiscordNotifier


def _notifier(monkeypatch, status=204):
    monkeypatch.setenv("DISCORD_WEBHOOK_URL", "https://discord.com/api/webhooks/1/abc")
    sent = []

    def handler(request):
        sent.append(json.loads(request.content))
        return httpx.Response(status)

    notifier = DiscordNotifier(client=httpx.Client(transport=httpx.MockTransport(handler)))
    return notifier, sent


def test_unconfigured_notifier_skips():
    assert DiscordNotifier().send("Title", "Message") is False


def test_send_embed(monkeypatch):
    notifier, sent = _notifier(monkeypatch)

    assert notifier.send("Title", "Message", fields=[{"name": "Bills", "value": "3"}]) is True
    embed = sent[0]["embeds"][0]
    assert embed["title"] == "Title"
    assert embed["footer"] == {"text": "LegisTrack"}
    assert embed["fields"] == [{"name": "Bills", "value": "3"}]


def test_send_failure_returns_false(monkeypatch):
    notifier, _ = _notifier(monkeypatch, status=500)
    assert notifier.send("Title", "Message") is False


def test_notify_batch_update(monkeypatch):
    notifier, sent = _notifier(monkeypatch)
    notifier.notify_batch_update({
        "success": True,
        "message": "Comprehensive update completed!",
        "details": {"bills_updated": 4, "summaries_updated": 0},
    })

    embed = sent[0]["embeds"][0]
    assert embed["title"] == "Batch Update Complete"
    assert [(f["name"], f["value"]) for f in embed["fields"]] == [("Bills", "4"), ("Summaries", "0")]


def test_notify_failed_batch_update_sends_error(monkeypatch):
    notifier, sent = _notifier(monkeypatch)
    notifier.notify_batch_update({"success": False, "message": "Database locked"})

    embed = sent[0]["embeds"][0]
    assert embed["title"] == "Error in batch-update"
    assert "Database locked" in embed["description"]
