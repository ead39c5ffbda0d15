from typing import Union


def preview(data: Union[str, bytes, None], limit: int = 80) -> str:
    """Short printable form of a relay payload for debug logs."""
    if data is None:
        return "<none>"
    if isinstance(data, (bytes, bytearray)):
        return f"<{len(data)} bytes>"
    if len(data) <= limit:
        return data
    return f"{data[:limit]}... ({len(data)} chars)"
