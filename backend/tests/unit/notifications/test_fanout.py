"""Unit tests for NotificationFanout

Both sinks receive the same serialized upload; a failure in one never
prevents delivery to the other and never reaches the producer.
"""

import json
from datetime import datetime, timezone
from uuid import uuid4

import httpx
import pytest

from conftest import FakeSubscriber
from uploadflow.models import Upload, UploadSource
from uploadflow.notifications import NotificationFanout, SubscriberRegistry, WebhookNotifier


def make_upload(**overrides):
    values = dict(
        id=uuid4(),
        owner_id="1",
        owner={"id": 1, "username": "alice"},
        attachments=["d41d8cd98f00b204e9800998ecf8427e.png"],
        published=True,
        allow_additional_attachments=False,
        timestamp=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        source=UploadSource.HTTP.value,
    )
    values.update(overrides)
    return Upload(**values)


def failing_webhook():
    def handler(request):
        return httpx.Response(500)

    return WebhookNotifier("https://hooks.example.com", transport=httpx.MockTransport(handler))


class TestNotify:

    @pytest.mark.asyncio
    async def test_both_sinks_get_same_serialized_upload(self, fanout, registry, webhook_requests):
        subscriber = FakeSubscriber()
        registry.register(subscriber)
        upload = make_upload()

        await fanout.notify(upload)

        (request,) = webhook_requests
        (frame,) = subscriber.frames
        assert request.content.decode() == frame

        payload = json.loads(frame)
        assert payload == {
            "id": str(upload.id),
            "user": {"id": 1, "username": "alice"},
            "attachments": ["d41d8cd98f00b204e9800998ecf8427e.png"],
            "published": True,
            "allowAdditionalAttachments": False,
            "timestamp": "2024-05-01T12:00:00Z",
            "source": "HTTP",
        }

    @pytest.mark.asyncio
    async def test_webhook_failure_does_not_block_broadcast(self, registry):
        subscriber = FakeSubscriber()
        registry.register(subscriber)
        fanout = NotificationFanout(failing_webhook(), registry)

        await fanout.notify(make_upload())

        assert len(subscriber.frames) == 1

    @pytest.mark.asyncio
    async def test_broadcast_failure_does_not_block_webhook(self, webhook, webhook_requests):
        class ExplodingRegistry(SubscriberRegistry):
            async def broadcast(self, payload):
                raise RuntimeError("registry broken")

        fanout = NotificationFanout(webhook, ExplodingRegistry())

        await fanout.notify(make_upload())

        assert len(webhook_requests) == 1

    @pytest.mark.asyncio
    async def test_mail_upload_carries_message(self, fanout, registry):
        subscriber = FakeSubscriber()
        registry.register(subscriber)

        await fanout.notify(make_upload(
            source=UploadSource.MAIL.value,
            mail_from="carol@example.com",
            mail_to="uploads@example.com",
            mail_subject="Holiday",
            mail_text="hi",
            mail_html=None,
        ))

        message = json.loads(subscriber.frames[0])["message"]
        assert message == {
            "from": "carol@example.com",
            "to": "uploads@example.com",
            "subject": "Holiday",
            "text": "hi",
            "html": None,
        }


class TestDispatch:

    @pytest.mark.asyncio
    async def test_dispatch_returns_before_delivery(self, fanout, registry):
        subscriber = FakeSubscriber()
        registry.register(subscriber)

        fanout.dispatch(make_upload())
        assert subscriber.frames == []
        assert fanout.pending == 1

        await fanout.drain()
        assert len(subscriber.frames) == 1
        assert fanout.pending == 0

    @pytest.mark.asyncio
    async def test_failed_delivery_never_raises_from_drain(self, registry):
        fanout = NotificationFanout(failing_webhook(), registry)
        fanout.dispatch(make_upload())
        await fanout.drain()
        assert fanout.pending == 0
