"""Device-facing error taxonomy.

Every error carries the HTTP status and the message the firmware expects in
``{"error": ...}``.
"""

from __future__ import annotations

from typing import Sequence


class IngestError(Exception):
    """Base error for the device-facing endpoints."""

    status_code = 500
    message = "Failed to process sensor data"

    def __init__(self, message: str | None = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class MissingCredentials(IngestError):
    status_code = 401
    message = "Missing device credentials"


class InvalidSecret(IngestError):
    status_code = 401
    message = "Invalid device key"


class UnknownOrInactiveDevice(IngestError):
    status_code = 403
    message = "Device not found or inactive"


class ValidationError(IngestError):
    status_code = 400
    message = "Invalid sensor data"

    def __init__(self, message: str | None = None, fields: Sequence[str] = ()):
        super().__init__(message)
        self.fields = tuple(fields)


class DeviceIdentityMismatch(ValidationError):
    message = "deviceName does not match x-device-id"


class PersistenceError(IngestError):
    status_code = 500
    message = "Failed to process sensor data"
