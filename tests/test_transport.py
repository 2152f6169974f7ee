"""Tests for outbound message delivery."""

import pytest
import requests

from applymate import transport
from applymate.errors import UpstreamError
from applymate.transport import RelayTransport, format_chat_id


def test_format_chat_id():
    assert format_chat_id("15551234567") == "15551234567@c.us"
    assert format_chat_id("15551234567@c.us") == "15551234567@c.us"
    assert format_chat_id("123-456@g.us") == "123-456@g.us"
    with pytest.raises(ValueError):
        format_chat_id("")


def test_unconfigured_relay():
    relay = RelayTransport(None)
    assert relay.ready is False
    with pytest.raises(UpstreamError, match="not configured"):
        relay.send_text("1@c.us", "hi")


class FakeResponse:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self._body = body or {}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")

    def json(self):
        return self._body


def test_send_text_posts_to_relay(monkeypatch):
    posted = {}

    def fake_post(url, json, timeout):
        posted.update(url=url, json=json, timeout=timeout)
        return FakeResponse(body={"id": "m1", "timestamp": 1700000000})

    monkeypatch.setattr(transport.requests, "post", fake_post)
    relay = RelayTransport("http://relay.local/", timeout=3)

    sent = relay.send_text("1@c.us", "hello")

    assert sent == {"message_id": "m1", "timestamp": 1700000000, "to": "1@c.us"}
    assert posted == {
        "url": "http://relay.local/messages",
        "json": {"to": "1@c.us", "type": "text", "text": "hello"},
        "timeout": 3,
    }


def test_relay_failure_raises_upstream_error(monkeypatch):
    monkeypatch.setattr(transport.requests, "post", lambda *a, **kw: FakeResponse(status_code=502))
    with pytest.raises(UpstreamError, match="Chat relay request failed"):
        RelayTransport("http://relay.local").send_image("1@c.us", {"url": "https://x/y.png"})
