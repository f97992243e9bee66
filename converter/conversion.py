# converter/conversion.py
import asyncio
import logging
import random
import string
import time

from . import config
from .errors import InvalidRequestError
from .media import build_media, content_type
from .models import ConversionResult, VideoInfo
from .videos import (
    FORMAT_KINDS,
    estimate_file_size,
    extract_video_id,
    is_valid_youtube_url,
    lookup_video,
    qualities_for,
    safe_filename,
)

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase


def new_file_id() -> str:
    """'<epoch ms>-<9 base36 chars>'"""
    suffix = "".join(random.choices(_BASE36, k=9))
    return f"{int(time.time() * 1000)}-{suffix}"


def validate_url(url: str | None) -> str:
    if not url:
        raise InvalidRequestError("Missing required field: url")
    if not is_valid_youtube_url(url):
        raise InvalidRequestError("Invalid YouTube URL")
    video_id = extract_video_id(url)
    if not video_id:
        raise InvalidRequestError("Could not extract video ID from URL")
    return video_id


def validate_convert_request(url: str | None, fmt: str | None, quality: str | None) -> str:
    """Check a convert request in the order the client reports errors; returns the video id."""
    if not url or not fmt or not quality:
        raise InvalidRequestError("Missing required fields: url, format, quality")
    if not is_valid_youtube_url(url):
        raise InvalidRequestError("Invalid YouTube URL")
    if fmt not in FORMAT_KINDS:
        raise InvalidRequestError("Invalid format. Must be 'mp3' or 'mp4'")
    allowed = qualities_for(fmt)
    if quality not in allowed:
        raise InvalidRequestError(
            f"Invalid quality '{quality}' for {fmt}. Must be one of: {', '.join(allowed)}"
        )
    video_id = extract_video_id(url)
    if not video_id:
        raise InvalidRequestError("Could not extract video ID from URL")
    return video_id


async def fetch_video_info(url: str | None) -> VideoInfo:
    video_id = validate_url(url)
    await asyncio.sleep(config.VIDEO_INFO_DELAY_SECS)
    return lookup_video(video_id)


async def convert(url: str | None, fmt: str | None, quality: str | None, store) -> ConversionResult:
    video_id = validate_convert_request(url, fmt, quality)

    await asyncio.sleep(config.LOOKUP_DELAY_SECS)
    info = lookup_video(video_id)

    await asyncio.sleep(config.CONVERT_DELAY_SECS)
    file_id = new_file_id()
    filename = safe_filename(info.title, fmt)
    data = build_media(fmt, info.title, info.duration)
    # boto3 and disk writes block; keep them off the event loop
    await asyncio.to_thread(store.put, file_id, filename, data, content_type(fmt))
    logger.info(f"[Convert] {video_id} -> {filename} ({fmt} {quality}) as {file_id}")

    return ConversionResult(
        title=info.title,
        duration=info.duration,
        thumbnail=info.thumbnail,
        download_url=f"/api/download/{file_id}",
        file_size=estimate_file_size(fmt, quality),
        format=fmt,
        quality=quality,
        filename=filename,
    )
