import re


def dial_uri(number: str) -> str:
    """Build the tel: intent the phone opens to place the call."""
    cleaned = re.sub(r"[^\d+*#]", "", number)
    if not cleaned:
        raise ValueError(f"Not a dialable number: {number!r}")
    return f"tel:{cleaned}"
