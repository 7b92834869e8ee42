from __future__ import annotations

import base64
import binascii
import logging
import re
import time
from pathlib import Path

from staffcheck.errors import validation_error
from staffcheck.settings import get_media_base_url, get_settings

logger = logging.getLogger("staffcheck.photos")

PHOTO_SUBDIR = "checklist-photos"
MAX_PHOTO_BYTES = 8 * 1024 * 1024
_DATA_URL_PREFIX = re.compile(r"^data:image/[\w.+-]+;base64,", re.IGNORECASE)


def decode_image_data(image_data: str) -> bytes:
    raw = _DATA_URL_PREFIX.sub("", image_data.strip(), count=1)
    try:
        content = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise validation_error("image_data is not valid base64.") from exc
    if not content:
        raise validation_error("image_data is empty.")
    if len(content) > MAX_PHOTO_BYTES:
        raise validation_error("Photo is too large.")
    return content


def build_photo_filename(checklist_id: int, photo_type: str, *, now_ms: int | None = None) -> str:
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{checklist_id}_{photo_type}_{now_ms}.jpg"


def store_checklist_photo(checklist_id: int, photo_type: str, image_data: str) -> tuple[str, str]:
    if photo_type not in {"start", "end"}:
        raise validation_error("type must be 'start' or 'end'.")
    content = decode_image_data(image_data)

    target_dir = Path(get_settings().media_dir) / PHOTO_SUBDIR
    target_dir.mkdir(parents=True, exist_ok=True)
    filename = build_photo_filename(checklist_id, photo_type)
    (target_dir / filename).write_bytes(content)

    url = f"{get_media_base_url()}/{PHOTO_SUBDIR}/{filename}"
    logger.info(
        "checklist_photo_stored",
        extra={"checklist_id": checklist_id, "photo_type": photo_type, "size_bytes": len(content)},
    )
    return url, filename
