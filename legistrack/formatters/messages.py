"""Share text and contact letters for bills."""

from typing import Optional
from urllib.parse import quote

from legistrack.models.database import Bill, Representative

# Share text limit, sized for the shortest social network
CHAR_LIMIT = 300

DEFAULT_SITE_URL = "https://legistrack.ai"


def truncate(text: str, limit: int = CHAR_LIMIT) -> str:
    """Truncate text to fit character limit."""
    if len(text) <= limit:
        return text
    if limit <= 3:
        return text[:max(limit, 0)]
    return text[:limit - 3] + "..."


def format_bill_id(bill: Bill) -> str:
    """Compact bill label, e.g. ``HR1234``."""
    return f"{bill.bill_type.upper()}{bill.number}"


def bill_url(bill: Bill, site_url: str = DEFAULT_SITE_URL) -> str:
    return f"{site_url.rstrip('/')}/bills/{bill.id}"


def format_share_text(bill: Bill, url: Optional[str] = None, message: Optional[str] = None,
                      limit: int = CHAR_LIMIT) -> str:
    """Build the share message for a bill, leaving room for the link."""
    text = message or f"Check out {bill.bill_type.upper()} {bill.number}: {bill.short_title or bill.title}"
    if not url:
        return truncate(text, limit)

    room = limit - len(url) - 1
    if room <= 0:
        return url
    return f"{truncate(text, room)} {url}"


def share_links(bill: Bill, message: Optional[str] = None, site_url: str = DEFAULT_SITE_URL) -> dict:
    """Share text plus ready-made links for the usual networks and email."""
    url = bill_url(bill, site_url)
    text = format_share_text(bill, message=message, limit=CHAR_LIMIT - len(url) - 1)
    subject = f"Legislative Update: {bill.bill_type.upper()} {bill.number}"
    body = f"{text}\n\nView the bill here: {url}"

    return {
        "message": text,
        "url": url,
        "twitter": f"https://twitter.com/intent/tweet?text={quote(text)}&url={quote(url, safe='')}",
        "facebook": f"https://www.facebook.com/sharer/sharer.php?u={quote(url, safe='')}&quote={quote(text)}",
        "linkedin": f"https://www.linkedin.com/sharing/share-offsite/?url={quote(url, safe='')}",
        "email": f"mailto:?subject={quote(subject)}&body={quote(body)}",
    }


def contact_message(bill: Bill, representative: Optional[Representative] = None,
                    position: Optional[str] = None) -> str:
    """Letter template for writing to a representative about a bill.

    Args:
        bill: Bill the letter is about
        representative: Addressee; a generic salutation is used when omitted
        position: "support" or "oppose" to fill the stance placeholder

    Returns:
        Letter text with bracketed placeholders for the user to complete
    """
    salutation = "Dear Representative,"
    if representative is not None and representative.last_name:
        title = "Senator" if representative.chamber == "senate" else "Representative"
        salutation = f"Dear {title} {representative.last_name},"

    stance = position if position in ("support", "oppose") else "[support/oppose]"

    return f"""{salutation}

I am writing regarding {bill.bill_type.upper()} {bill.number}, "{bill.short_title or bill.title}".

[Explain your position on the bill and why it matters to you]

I urge you to {stance} this legislation because [your reasoning].

Thank you for your consideration.

Sincerely,
[Your Name]
[Your Address]
[Your Contact Information]"""
