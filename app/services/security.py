import bleach


def sanitize_text(text: str | None) -> str | None:
    """Strip markup from client-supplied text before it lands in an HTML page."""
    if text is None:
        return None
    return bleach.clean(text, tags=[], attributes={}, strip=True)
