"""Image attachments submitted alongside user text."""

import base64
import binascii
import re
from dataclasses import dataclass, field

from coworkbot.config import AttachmentConfig
from coworkbot.content import ContentBlock, ImageBlock, TextBlock
from coworkbot.exceptions import ValidationError
from coworkbot.logging import get_logger

log = get_logger(__name__)

IMAGE_ONLY_PROMPT = "Please analyze this image."

_DATA_URL_RE = re.compile(r"^data:(image/[a-zA-Z+.-]+);base64,(.+)$", re.DOTALL)


@dataclass
class SubmitInput:
    """User submission: text plus optional image data URLs."""

    text: str = ""
    images: list[str] = field(default_factory=list)


def parse_image(data_url: str, config: AttachmentConfig) -> ImageBlock | None:
    """Decode one ``data:<type>;base64,<data>`` URL, or None when it must be dropped."""
    match = _DATA_URL_RE.match((data_url or "").strip())
    if not match:
        log.warning("Invalid image data format, skipping")
        return None

    media_type, data = match.group(1).lower(), match.group(2).strip()
    if media_type not in config.supported_types:
        log.warning("Unsupported image type, skipping", media_type=media_type)
        return None

    try:
        decoded = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        log.warning("Malformed base64 image data, skipping", media_type=media_type)
        return None

    if len(decoded) > config.max_image_bytes:
        log.warning(
            "Image exceeds size limit, skipping",
            size=len(decoded),
            max_bytes=config.max_image_bytes,
        )
        return None
    return ImageBlock(media_type=media_type, data=data)


def build_user_content(
    text: str,
    images: list[str],
    config: AttachmentConfig,
) -> str | list[ContentBlock]:
    """Turn a submission into message content.

    Raises:
        ValidationError: more images than ``max_images`` or nothing to send
    """
    if len(images) > config.max_images:
        raise ValidationError(
            f"Too many images. Maximum {config.max_images} images per message, "
            f"received {len(images)}."
        )

    blocks: list[ContentBlock] = []
    for data_url in images:
        image = parse_image(data_url, config)
        if image is not None:
            blocks.append(image)
    if images and not blocks:
        log.warning("No valid images were processed", received=len(images))

    if not blocks:
        if not text.strip():
            raise ValidationError("Message is empty.")
        return text

    blocks.append(TextBlock(text=text if text.strip() else IMAGE_ONLY_PROMPT))
    return blocks
