"""Device authentication for the firmware-facing endpoints."""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets

from fastapi import Depends, Header
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .config import Settings, get_settings
from .db import get_db
from .errors import InvalidSecret, MissingCredentials, PersistenceError, UnknownOrInactiveDevice
from .models import Device
from .stores import get_device_by_name

logger = logging.getLogger(__name__)


def hash_device_key(device_key: str) -> str:
    return hashlib.sha256(device_key.encode("utf-8")).hexdigest()


def generate_device_key(device_name: str) -> str:
    """Issue a fresh random key for *device_name*; only its hash is stored."""

    return f"device_{device_name}_{secrets.token_urlsafe(18)}"


def installation_key(device_id: str, pattern: str) -> str:
    """Key derived from the installation-wide pattern, for devices without an issued key."""

    return pattern.format(device_id=device_id)


def key_matches(device: Device, presented: str, settings: Settings) -> bool:
    if device.key_hash:
        return hmac.compare_digest(hash_device_key(presented), device.key_hash)
    expected = installation_key(device.device_name, settings.device_key_pattern)
    return hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))


async def authenticate_device(
    db: AsyncSession,
    device_id: str | None,
    device_key: str | None,
    settings: Settings | None = None,
) -> Device:
    """Return the active device identified by *device_id* if *device_key* is valid.

    Raises MissingCredentials, UnknownOrInactiveDevice or InvalidSecret, in
    that order of checking. Read-only.
    """

    settings = settings or get_settings()
    device_id = (device_id or "").strip()
    if not device_id or not (device_key or "").strip():
        raise MissingCredentials()

    try:
        device = await get_device_by_name(db, device_id)
    except SQLAlchemyError as exc:
        logger.exception("Device lookup failed for '%s'", device_id)
        raise PersistenceError() from exc

    if device is None or not device.is_active:
        raise UnknownOrInactiveDevice()

    if not key_matches(device, device_key, settings):
        logger.warning("Rejected key for device '%s'", device_id)
        raise InvalidSecret()

    return device


async def require_device(
    x_device_id: str | None = Header(default=None, alias="x-device-id"),
    x_device_key: str | None = Header(default=None, alias="x-device-key"),
    db: AsyncSession = Depends(get_db),
) -> Device:
    return await authenticate_device(db, x_device_id, x_device_key)
