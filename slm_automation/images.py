"""Download application images from Snow License Manager for the service catalog."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Tuple

import requests

from .models import ApplicationRecord

logger = logging.getLogger(__name__)

NO_IMAGE = "noImage"
IMAGE_FOLDER = Path("StaticContent") / "ServiceImages"
IMAGE_REFERENCE_PREFIX = "/StaticContent/ServiceImages/"
REQUEST_TIMEOUT = 30


def _is_plain_file_name(file_name: str) -> bool:
    if "/" in file_name or "\\" in file_name or ".." in file_name:
        return False
    return Path(file_name).name == file_name


def fetch_image(
    record: ApplicationRecord,
    base_uri: str,
    credentials: Optional[Tuple[str, str]],
    root_folder: Path,
    session: Optional[requests.Session] = None,
) -> str:
    """Store the application's image locally and return its catalog reference.

    Returns ``noImage`` when the record has no image or anything goes wrong;
    failures are logged rather than raised so the import can continue.
    """

    image_folder = Path(root_folder) / IMAGE_FOLDER
    try:
        image_folder.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.error("Unable to create image folder %s: %s", image_folder, exc)

    file_name = (record.image_file_name or "").strip()
    if not file_name:
        return NO_IMAGE
    if not _is_plain_file_name(file_name):
        logger.error("Refusing image name %r: it must be a bare file name", file_name)
        return NO_IMAGE

    url = f"{base_uri.rstrip('/')}/Upload/Store/Images/{file_name}"
    http = session or requests.Session()
    try:
        response = http.get(url, auth=credentials, timeout=REQUEST_TIMEOUT)
        response.raise_for_status()
        (image_folder / file_name).write_bytes(response.content)
    except (requests.RequestException, OSError) as exc:
        logger.error("Unable to import image %s from %s: %s", file_name, url, exc)
        return NO_IMAGE
    finally:
        if session is None:
            http.close()

    logger.info("Imported image %s for %s", file_name, record.name or "application")
    return f"{IMAGE_REFERENCE_PREFIX}{file_name}"


__all__ = ["NO_IMAGE", "fetch_image"]
