"""Inbound mail ingestion (MIME parsing and the SMTP handler)"""

from .mime_parser import MailAttachment, ParsedMessage, parse_message

__all__ = ["MailAttachment", "ParsedMessage", "parse_message"]
