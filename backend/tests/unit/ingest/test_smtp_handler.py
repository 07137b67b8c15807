"""Unit tests for the SMTP ingestion handler"""

import hashlib
import json
from contextlib import contextmanager
from email.message import EmailMessage

import pytest
from aiosmtpd.smtp import Envelope

from conftest import FakeSubscriber
from uploadflow.errors import AppError, ErrorKind
from uploadflow.infrastructure.ingest import smtp_handler
from uploadflow.infrastructure.ingest.smtp_handler import UploadFlowSMTPHandler
from uploadflow.models import Upload
from uploadflow.uploads import service

PNG = b"\x89PNG\r\n\x1a\n" + b"\x11" * 40


def raw_message(with_png=True) -> bytes:
    msg = EmailMessage()
    msg["From"] = "Carol <carol@example.com>"
    msg["To"] = "uploads@example.com"
    msg["Subject"] = "Look at this"
    msg.set_content("hello")
    if with_png:
        msg.add_attachment(PNG, maintype="image", subtype="png", filename="cat.png")
    msg.add_attachment(b"MZ", maintype="application", subtype="octet-stream", filename="virus.exe")
    return msg.as_bytes()


def envelope_for(content: bytes, rcpt_tos=("uploads@example.com",)) -> Envelope:
    envelope = Envelope()
    envelope.mail_from = "carol@example.com"
    envelope.rcpt_tos = list(rcpt_tos)
    envelope.content = content
    envelope.original_content = content
    return envelope


@pytest.fixture
def session_scope(session_factory):
    @contextmanager
    def scope():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    return scope


@pytest.fixture
def handler(session_scope, storage, fanout):
    return UploadFlowSMTPHandler(session_scope, storage, fanout)


class TestHandleData:

    @pytest.mark.asyncio
    async def test_message_becomes_published_upload(self, handler, fanout, registry, db_session):
        subscriber = FakeSubscriber()
        registry.register(subscriber)

        reply = await handler.handle_DATA(None, None, envelope_for(raw_message()))
        await fanout.drain()

        assert reply == "250 Message accepted"
        (upload,) = db_session.query(Upload).all()
        assert upload.published is True
        assert upload.attachments == [f"{hashlib.md5(PNG).hexdigest()}.png"]
        assert upload.mail_subject == "Look at this"
        assert upload.mail_to == "uploads@example.com"
        assert json.loads(subscriber.frames[0])["id"] == str(upload.id)

    @pytest.mark.asyncio
    async def test_message_without_usable_attachment(self, handler, fanout, db_session):
        reply = await handler.handle_DATA(None, None, envelope_for(raw_message(with_png=False)))

        assert reply.startswith("250")
        assert db_session.query(Upload).count() == 0
        assert fanout.dispatched == []

    @pytest.mark.asyncio
    async def test_no_recipients(self, handler):
        reply = await handler.handle_DATA(None, None, envelope_for(raw_message(), rcpt_tos=()))
        assert reply.startswith("550")

    @pytest.mark.asyncio
    async def test_recipient_allow_list(self, session_scope, storage, fanout, db_session):
        handler = UploadFlowSMTPHandler(
            session_scope, storage, fanout, accepted_recipients=["Uploads@Example.com"]
        )

        rejected = await handler.handle_DATA(
            None, None, envelope_for(raw_message(), rcpt_tos=["someone@example.com"])
        )
        accepted = await handler.handle_DATA(None, None, envelope_for(raw_message()))

        assert rejected.startswith("550")
        assert accepted == "250 Message accepted"
        assert db_session.query(Upload).count() == 1

    @pytest.mark.asyncio
    async def test_persistence_failure_is_temporary(self, handler, monkeypatch):
        async def failing_ingest(self, message):
            raise AppError(ErrorKind.CREATE_FAILED)

        monkeypatch.setattr(service.UploadLifecycleManager, "ingest_mail", failing_ingest)

        reply = await handler.handle_DATA(None, None, envelope_for(raw_message()))
        assert reply.startswith("451")

    @pytest.mark.asyncio
    async def test_unparseable_message_is_temporary(self, handler, monkeypatch):
        def broken_parser(content, envelope_to=None):
            raise ValueError("Invalid MIME message")

        monkeypatch.setattr(smtp_handler, "parse_message", broken_parser)

        reply = await handler.handle_DATA(None, None, envelope_for(b"garbage"))
        assert reply == "451 Message parsing failed"
