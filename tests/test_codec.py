"""Tests for subscription decoding and encoding."""

import pytest

from app import codec
from app.errors import MalformedSubscription
from app.models import Subscription, SubscriptionKeys


class TestDecode:
    def test_decodes_browser_subscription(self):
        raw = {
            "endpoint": "https://updates.push.services.mozilla.com/wpush/v2/abc",
            "expirationTime": None,
            "keys": {"p256dh": "BKey", "auth": "secret"},
        }

        subscription = codec.decode(raw)

        assert subscription.endpoint == raw["endpoint"]
        assert subscription.keys.p256dh == "BKey"
        assert subscription.keys.auth == "secret"
        assert subscription.expirationTime is None

    def test_accepts_model_input(self):
        model = Subscription(endpoint="https://push.example/1", keys=SubscriptionKeys(p256dh="k", auth="a"))
        assert codec.decode(model) == model

    def test_keeps_expiration_time(self):
        raw = {"endpoint": "https://push.example/1", "expirationTime": 1700000000000, "keys": {"p256dh": "k", "auth": "a"}}
        assert codec.decode(raw).expirationTime == 1700000000000

    @pytest.mark.parametrize("raw", [
        {"keys": {"p256dh": "k", "auth": "a"}},
        {"endpoint": "", "keys": {"p256dh": "k", "auth": "a"}},
        {"endpoint": "   ", "keys": {"p256dh": "k", "auth": "a"}},
        {"endpoint": 42, "keys": {"p256dh": "k", "auth": "a"}},
        {"endpoint": "https://push.example/1"},
        {"endpoint": "https://push.example/1", "keys": "k"},
        {"endpoint": "https://push.example/1", "keys": {"auth": "a"}},
        {"endpoint": "https://push.example/1", "keys": {"p256dh": "k", "auth": ""}},
        {"endpoint": "https://push.example/1", "expirationTime": "soon", "keys": {"p256dh": "k", "auth": "a"}},
        {"endpoint": "https://push.example/1", "expirationTime": 10 ** 400, "keys": {"p256dh": "k", "auth": "a"}},
    ])
    def test_rejects_incomplete_subscription(self, raw):
        with pytest.raises(MalformedSubscription):
            codec.decode(raw)

    def test_rejects_non_mapping(self):
        with pytest.raises(MalformedSubscription):
            codec.decode(["https://push.example/1"])


class TestEncode:
    def test_produces_transport_subscription_info(self):
        subscription = Subscription(
            endpoint="https://push.example/1",
            expirationTime=1700000000000,
            keys=SubscriptionKeys(p256dh="k", auth="a"),
        )

        assert codec.encode(subscription) == {
            "endpoint": "https://push.example/1",
            "keys": {"p256dh": "k", "auth": "a"},
        }
