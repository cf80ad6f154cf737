import re
import logging

from store import StoreError

logger = logging.getLogger(__name__)

INVOICE_NUMBER_RE = re.compile(r"^INV-(\d+)$")
FIRST_INVOICE_NUMBER = "INV-001"


def format_invoice_number(seq: int) -> str:
    return f"INV-{seq:03d}"


def next_invoice_number(store, user_id: int, scan_limit: int = 50) -> str:
    """
    Returns the next invoice number like INV-004 for a user.

    Only the `scan_limit` most recent invoices are looked at, so a user with a
    longer history can get a number that already exists further back.
    Falls back to INV-001 when nothing matches or the fetch fails.
    """
    try:
        numbers = store.recent_invoice_numbers(user_id, scan_limit)
    except StoreError:
        logger.exception("Could not fetch recent invoice numbers for user=%s", user_id)
        return FIRST_INVOICE_NUMBER

    highest = 0
    for value in numbers:
        m = INVOICE_NUMBER_RE.match((value or "").strip())
        if m:
            highest = max(highest, int(m.group(1)))

    if not highest:
        return FIRST_INVOICE_NUMBER
    return format_invoice_number(highest + 1)
