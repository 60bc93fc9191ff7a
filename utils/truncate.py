"""Log body truncation.

Request and response bodies are logged on every Flashduty call. Large list
responses would flood the log file, so anything over the limit is replaced
by its size and a short preview.
"""

DEFAULT_MAX_BODY_SIZE = 2048
DEFAULT_PREVIEW_SIZE = 500


def truncate_body(
    body: str,
    max_size: int = DEFAULT_MAX_BODY_SIZE,
    preview_size: int = DEFAULT_PREVIEW_SIZE,
) -> str:
    """Return body unchanged if it fits, otherwise a size marker and preview.

    Sizes are measured in UTF-8 bytes. The preview never exceeds max_size and
    never splits a multi-byte character.

    Args:
        body: Text to log.
        max_size: Largest body, in bytes, that is logged in full.
        preview_size: Bytes of the body kept in the truncated form.

    Returns:
        body, or "[LARGE_BODY: truncated, size: N bytes, preview: ...]".
    """
    encoded = body.encode("utf-8")
    if len(encoded) <= max_size:
        return body

    preview_size = min(preview_size, max_size)
    preview = encoded[:preview_size].decode("utf-8", errors="ignore")
    return f"[LARGE_BODY: truncated, size: {len(encoded)} bytes, preview: {preview}...]"
