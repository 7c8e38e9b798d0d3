"""Decides which remote files are indexable video media.

This is a naming heuristic, not content sniffing: a mislabelled file
with a video extension is accepted, and a real video with neither a
video MIME type nor a known extension is skipped.
"""

from __future__ import annotations

VIDEO_MIME_PREFIX = "video/"

# Extensions accepted regardless of the declared MIME type
VIDEO_EXTENSIONS = {".mp4", ".mkv", ".avi", ".webm", ".mov", ".m4v"}


def get_extension(filename: str) -> str:
    """Get lowercase file extension including the dot, or "" if there is none."""
    if "." in filename:
        return "." + filename.rsplit(".", 1)[-1].lower()
    return ""


def is_media(mime_type: str | None, filename: str | None) -> bool:
    """Check whether a file should be cataloged as a video.

    Args:
        mime_type: MIME type declared by the provider (may be empty).
        filename: Name of the file on the drive.

    Returns:
        True if the MIME type is ``video/*`` or the extension is allow-listed.
    """
    if mime_type and mime_type.lower().startswith(VIDEO_MIME_PREFIX):
        return True
    if filename:
        return get_extension(filename) in VIDEO_EXTENSIONS
    return False
