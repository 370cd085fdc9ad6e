"""
Video identifier extraction.

Turns a YouTube watch URL or short link into the platform video id.
"""

from urllib.parse import parse_qs, urlsplit

from .errors import InvalidVideoReference

WATCH_HOSTS = frozenset({"youtube.com", "www.youtube.com"})
SHORT_LINK_HOSTS = frozenset({"youtu.be"})


def extract_video_id(reference: str) -> str:
    """Extract the video id from a YouTube URL.

    ``youtube.com/watch?v=<id>`` (with or without ``www``) yields the ``v``
    query parameter; ``youtu.be/<id>`` yields the first path segment.

    Args:
        reference: URL supplied by the user

    Returns:
        The video identifier

    Raises:
        InvalidVideoReference: For other hosts, malformed URLs, or a missing id
    """
    if not isinstance(reference, str) or not reference.strip():
        raise InvalidVideoReference("No video URL provided")

    try:
        parts = urlsplit(reference.strip())
        host = (parts.hostname or "").lower()
    except ValueError:
        raise InvalidVideoReference("Invalid YouTube URL")

    if parts.scheme not in ("http", "https"):
        raise InvalidVideoReference("Invalid YouTube URL")

    if host in WATCH_HOSTS:
        values = parse_qs(parts.query).get("v", [])
        video_id = values[0] if values else ""
    elif host in SHORT_LINK_HOSTS:
        video_id = parts.path.lstrip("/").split("/", 1)[0]
    else:
        raise InvalidVideoReference(f"Unsupported video host: {host or reference!r}")

    video_id = video_id.strip()
    if not video_id:
        raise InvalidVideoReference("Unable to extract video ID")
    return video_id
