# converter/videos.py
import re
from typing import Optional

from .models import VideoInfo

YOUTUBE_URL_RE = re.compile(r"^(https?://)?(www\.)?(youtube\.com|youtu\.be)/.+")

VIDEO_ID_PATTERNS = [
    re.compile(r"(?:youtube\.com/watch\?v=|youtu\.be/|youtube\.com/embed/)([^&\n?#]+)"),
    re.compile(r"youtube\.com/watch\?.*v=([^&\n?#]+)"),
]

AVAILABLE_FORMATS = {
    "audio": ["128", "192", "320"],
    "video": ["360", "720", "1080", "4k"],
}

# container extension -> job format
FORMAT_KINDS = {"mp3": "audio", "mp4": "video"}

# Fixed catalog; the same video id always maps to the same entry
MOCK_VIDEOS = [
    {
        "title": "How to Build Amazing Web Applications",
        "channel": "WebDev Pro",
        "duration": "12:34",
        "views": "2,456,789",
    },
    {
        "title": "Complete JavaScript Tutorial for Beginners",
        "channel": "CodeMaster",
        "duration": "45:12",
        "views": "5,234,567",
    },
    {
        "title": "React vs Vue: Which Framework to Choose?",
        "channel": "TechReview",
        "duration": "18:45",
        "views": "1,876,543",
    },
    {
        "title": "10 CSS Tricks Every Developer Should Know",
        "channel": "DesignGuru",
        "duration": "8:23",
        "views": "987,654",
    },
]

FILE_SIZES = {
    "mp3": {"128": "3.1 MB", "192": "4.6 MB", "320": "7.8 MB"},
    "mp4": {"360": "15.3 MB", "720": "45.7 MB", "1080": "89.2 MB", "4k": "256.8 MB"},
}
DEFAULT_FILE_SIZES = {"mp3": "5.2 MB", "mp4": "25.8 MB"}

UPLOAD_DATE = "2024-01-15"


def is_valid_youtube_url(url: str) -> bool:
    return bool(YOUTUBE_URL_RE.match(url))


def extract_video_id(url: str) -> Optional[str]:
    for pattern in VIDEO_ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def thumbnail_url(video_id: str) -> str:
    return f"https://img.youtube.com/vi/{video_id}/maxresdefault.jpg"


def lookup_video(video_id: str) -> VideoInfo:
    """Deterministic mock metadata for a video id."""
    index = sum(ord(c) for c in video_id) % len(MOCK_VIDEOS)
    entry = MOCK_VIDEOS[index]
    return VideoInfo(
        id=video_id,
        title=entry["title"],
        description=f"This is an amazing video about {entry['title'].lower()}...",
        duration=entry["duration"],
        thumbnail=thumbnail_url(video_id),
        channel=entry["channel"],
        views=entry["views"],
        upload_date=UPLOAD_DATE,
        available_formats={k: list(v) for k, v in AVAILABLE_FORMATS.items()},
    )


def qualities_for(fmt: str) -> list[str]:
    return AVAILABLE_FORMATS[FORMAT_KINDS[fmt]]


def estimate_file_size(fmt: str, quality: str) -> str:
    return FILE_SIZES.get(fmt, {}).get(quality, DEFAULT_FILE_SIZES.get(fmt, DEFAULT_FILE_SIZES["mp3"]))


def safe_filename(title: str, ext: str) -> str:
    # keep letters, digits, whitespace and dashes only
    stem = re.sub(r"[^a-zA-Z0-9\s-]", "", title).strip()
    return f"{stem or 'download'}.{ext}"
