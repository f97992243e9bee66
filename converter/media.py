"""
Synthetic media containers.

Nothing here encodes audio or video. The output only carries enough
structure (ID3 tag + MPEG audio frame headers, or ftyp/mdat boxes) for the
file to be recognised by its magic numbers.
"""

import struct

CONTENT_TYPES = {"mp3": "audio/mpeg", "mp4": "video/mp4"}

# MPEG-1 Layer III, 128 kbps, 44.1 kHz, no padding, stereo
MP3_FRAME_HEADER = b"\xff\xfb\x90\x00"
MP3_FRAME_LENGTH = 144 * 128000 // 44100
MP3_FRAME_COUNT = 8

MP4_MAJOR_BRAND = b"isom"
MP4_MINOR_VERSION = 0x200
MP4_COMPATIBLE_BRANDS = (b"isom", b"iso2", b"avc1", b"mp41")


def content_type(fmt: str) -> str:
    return CONTENT_TYPES.get(fmt, "application/octet-stream")


def duration_to_ms(duration: str) -> int:
    """'12:34' or '1:02:03' -> milliseconds; unparseable input gives 0."""
    seconds = 0
    for part in duration.split(":"):
        if not part.isdigit():
            return 0
        seconds = seconds * 60 + int(part)
    return seconds * 1000


def _synchsafe(n: int) -> bytes:
    return bytes(((n >> shift) & 0x7F) for shift in (21, 14, 7, 0))


def _id3_text_frame(frame_id: bytes, text: str) -> bytes:
    # encoding 0x01 = UTF-16 with BOM
    body = b"\x01" + text.encode("utf-16")
    return frame_id + struct.pack(">I", len(body)) + b"\x00\x00" + body


def build_id3_tag(title: str, duration: str) -> bytes:
    frames = _id3_text_frame(b"TIT2", title)
    length_ms = duration_to_ms(duration)
    if length_ms:
        frames += _id3_text_frame(b"TLEN", str(length_ms))
    return b"ID3\x03\x00\x00" + _synchsafe(len(frames)) + frames


def build_mp3(title: str, duration: str) -> bytes:
    frame = MP3_FRAME_HEADER + bytes(MP3_FRAME_LENGTH - len(MP3_FRAME_HEADER))
    return build_id3_tag(title, duration) + frame * MP3_FRAME_COUNT


def box(box_type: bytes, payload: bytes) -> bytes:
    return struct.pack(">I", 8 + len(payload)) + box_type + payload


def build_mp4(title: str, duration: str) -> bytes:
    ftyp = box(
        b"ftyp",
        MP4_MAJOR_BRAND + struct.pack(">I", MP4_MINOR_VERSION) + b"".join(MP4_COMPATIBLE_BRANDS),
    )
    mdat = box(b"mdat", f"{title} ({duration})".encode("utf-8"))
    return ftyp + mdat


BUILDERS = {"mp3": build_mp3, "mp4": build_mp4}


def build_media(fmt: str, title: str, duration: str) -> bytes:
    try:
        builder = BUILDERS[fmt]
    except KeyError:
        raise ValueError(f"Unsupported format: {fmt}") from None
    return builder(title, duration)
