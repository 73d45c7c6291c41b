from __future__ import annotations

import asyncio
import io
import logging
from dataclasses import dataclass
from typing import Union

import aiohttp
import discord
import regex
from PIL import Image

log = logging.getLogger(__name__)

UNICODE_EMOJI_RX = regex.compile(r"\p{Emoji_Presentation}|\p{Emoji}\uFE0F")
DISCORD_EMOJI_RX = regex.compile(r"<a?:.+:[0-9]+>")
GRAPHEME_RX = regex.compile(r"\X")

ICON_SIZE = 96


@dataclass(frozen=True)
class UnicodeEmoji:
    value: str


@dataclass(frozen=True)
class CustomEmoji:
    emoji_id: int
    emoji: discord.Emoji


@dataclass(frozen=True)
class ImageBytes:
    data: bytes
    content_type: str


IconSpec = Union[UnicodeEmoji, CustomEmoji, ImageBytes]


@dataclass(frozen=True)
class Rejection:
    reason: str


class AttachmentSource:
    """Downloads the bytes behind an attachment URL."""

    def __init__(self, timeout: int = 20, chunk_size: int = 64 * 1024):
        self.timeout = timeout
        self.chunk_size = chunk_size

    async def fetch_bytes(self, url: str) -> bytes:
        # The body is streamed; only a fully drained buffer is handed back.
        buffer = bytearray()
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
            async with session.get(url) as resp:
                resp.raise_for_status()
                async for chunk in resp.content.iter_chunked(self.chunk_size):
                    buffer.extend(chunk)
        return bytes(buffer)


def process_icon_bytes(raw: bytes, size: int = ICON_SIZE) -> bytes:
    """Fit an uploaded image into a transparent ``size`` x ``size`` PNG.

    Only the first frame of animated images is kept. The result stays well
    under the 256 KB Discord accepts for a role icon.
    """
    with Image.open(io.BytesIO(raw)) as source:
        icon = source.convert("RGBA")
    icon.thumbnail((size, size), Image.LANCZOS)
    canvas = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    offset = ((size - icon.width) // 2, (size - icon.height) // 2)
    canvas.paste(icon, offset)
    png = io.BytesIO()
    canvas.save(png, format="PNG", optimize=True)
    return png.getvalue()


def is_unicode_emoji(text: str) -> bool:
    return UNICODE_EMOJI_RX.search(text) is not None


def first_grapheme(text: str) -> str:
    match = GRAPHEME_RX.match(text)
    return match.group() if match else ""


def parse_custom_emoji_id(token: str) -> int | None:
    """Return the numeric id of a ``<:name:id>`` token, or None if malformed."""
    parts = token.split(":")
    if len(parts) < 3:
        return None
    tail = parts[2]
    end = tail.find(">")
    if end < 0:
        return None
    digits = tail[:end]
    if not (digits.isascii() and digits.isdigit()):
        return None
    return int(digits)


async def classify_emoji(text: str, directory) -> IconSpec | Rejection:
    """Turn a raw emoji option into an icon.

    A leading unicode emoji wins over a custom emoji token. Only the first
    grapheme cluster is kept, so ``"😀 nice"`` becomes ``"😀"``. Anything
    else is tried as a ``<:name:id>`` token.
    """
    text = text.strip()

    if is_unicode_emoji(text):
        cluster = first_grapheme(text)
        if is_unicode_emoji(cluster):
            return UnicodeEmoji(cluster)

    match = DISCORD_EMOJI_RX.search(text)
    if match is None:
        return Rejection(f"Invalid emoji {text} passed in.")

    not_found = Rejection(
        f"Error while finding Discord emoji {text}. Emoji may not exist in this guild or is invalid."
    )
    emoji_id = parse_custom_emoji_id(match.group())
    if emoji_id is None:
        log.warning("Malformed custom emoji token %r", text)
        return not_found

    try:
        emoji = await directory.resolve_custom_emoji(emoji_id)
    except discord.HTTPException:
        log.exception("Error fetching Discord emoji %s", emoji_id)
        return not_found
    if emoji is None:
        log.info("Custom emoji %s not found in guild", emoji_id)
        return not_found
    return CustomEmoji(emoji_id=emoji_id, emoji=emoji)


async def classify_attachment(attachment, source: AttachmentSource) -> IconSpec | Rejection:
    if attachment is None:
        return Rejection("No attachment received.")

    content_type = attachment.content_type or ""
    if "image" not in content_type:
        log.info("Non-image attachment %s (%s)", attachment.url, content_type or "no content type")
        return Rejection("Non-image attachment received.")

    try:
        raw = await source.fetch_bytes(attachment.url)
    except (aiohttp.ClientError, asyncio.TimeoutError):
        log.exception("Error while downloading attachment %s", attachment.url)
        return Rejection("Error while processing attachment.")

    try:
        data = process_icon_bytes(raw)
    except (OSError, ValueError, Image.DecompressionBombError):
        log.exception("Attachment %s is not a readable image", attachment.url)
        return Rejection("Attachment could not be read as an image.")

    return ImageBytes(data=data, content_type="image/png")
