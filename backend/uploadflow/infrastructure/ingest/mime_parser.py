"""MIME Parser for inbound mail ingestion.

Turns a raw RFC 5322 message into the ParsedMessage structure consumed by
mail ingestion: subject, plain and HTML bodies, sender, recipient and the
declared attachments. Supports RFC 2047 encoded headers and filenames and
nested multipart messages.
"""

import email
import email.policy
import hashlib
import logging
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import getaddresses, parseaddr
from typing import List, Optional

logger = logging.getLogger(__name__)


@dataclass
class MailAttachment:
    """A file attached to an inbound message.

    Attributes:
        checksum: MD5 hex digest of the decoded content
        file_name: Declared filename (decoded)
        content: Decoded attachment bytes
    """
    checksum: str
    file_name: str
    content: bytes


@dataclass
class ParsedMessage:
    """Parsed inbound message."""
    subject: Optional[str]
    text: Optional[str]
    html: Optional[str]
    from_address: Optional[str]
    from_name: Optional[str]
    to_address: Optional[str]
    attachments: List[MailAttachment] = field(default_factory=list)


def parse_mime_message(raw_mime: bytes) -> EmailMessage:
    """Parse raw MIME bytes into an EmailMessage.

    Raises:
        ValueError: If MIME parsing fails
    """
    try:
        return email.message_from_bytes(raw_mime, policy=email.policy.default)
    except Exception as e:
        logger.error(f"Failed to parse MIME message: {e}")
        raise ValueError(f"Invalid MIME message: {e}")


def _body_content(msg: EmailMessage, subtype: str) -> Optional[str]:
    part = msg.get_body(preferencelist=(subtype,))
    if part is None or part.get_filename():
        return None
    try:
        return part.get_content()
    except (LookupError, ValueError) as e:
        logger.warning(f"Unable to decode text/{subtype} body: {e}")
        return None


def extract_attachments(msg: EmailMessage) -> List[MailAttachment]:
    """Extract every declared file from the message.

    Walks the MIME tree and keeps each non-multipart part that carries a
    filename, inline or not. Empty parts are kept like any other file.
    """
    attachments = []

    for part in msg.walk():
        if part.get_content_maintype() == "multipart":
            continue

        filename = part.get_filename()
        if not filename:
            continue

        content = part.get_payload(decode=True) or b""

        attachments.append(MailAttachment(
            checksum=hashlib.md5(content).hexdigest(),
            file_name=filename,
            content=content,
        ))
        logger.info(f"Extracted attachment: {filename} ({len(content)} bytes)")

    return attachments


def extract_parsed_message(msg: EmailMessage, envelope_to: Optional[str] = None) -> ParsedMessage:
    """Build a ParsedMessage from a parsed MIME message.

    Args:
        msg: Parsed email message
        envelope_to: SMTP envelope recipient, used when the To header is absent
    """
    from_name, from_address = parseaddr(str(msg.get("From", "")))
    recipients = [address for _, address in getaddresses([str(v) for v in msg.get_all("To", [])]) if address]
    subject = msg.get("Subject")

    return ParsedMessage(
        subject=str(subject) if subject is not None else None,
        text=_body_content(msg, "plain"),
        html=_body_content(msg, "html"),
        from_address=from_address or None,
        from_name=from_name or None,
        to_address=recipients[0] if recipients else envelope_to,
        attachments=extract_attachments(msg),
    )


def parse_message(raw_mime: bytes, envelope_to: Optional[str] = None) -> ParsedMessage:
    """Parse raw MIME bytes straight into a ParsedMessage.

    Raises:
        ValueError: If MIME parsing fails
    """
    return extract_parsed_message(parse_mime_message(raw_mime), envelope_to=envelope_to)
