"""Formatters for bill share text and contact letters."""

from legistrack.formatters.messages import (
    contact_message,
    format_bill_id,
    format_share_text,
    share_links,
    truncate,
)

__all__ = [
    "contact_message",
    "format_bill_id",
    "format_share_text",
    "share_links",
    "truncate",
]
