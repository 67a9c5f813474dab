"""Decide how a firmware image reaches the BMC and build the SimpleUpdate body."""

import enum
import logging
import os
import re
from dataclasses import dataclass

from rfbmc import BMC_TEMP_PREFIX
from rfbmc.client import BMCError
from rfbmc.update import (
    MSG_IMAGE_URI_ILLEGAL_SCHEMA,
    MSG_IMAGE_URI_NO_SCHEMA,
    STAGE_UPLOAD_FILE,
    STATE_FAILED,
    STATE_INVALID_URI,
    STATE_START,
    STATE_SUCCESS,
    TRANSFER_PROTOCOLS,
    UpdateError,
    ValidationError,
)

LOG = logging.getLogger(__name__)

_URI_RE = re.compile(r"^(?P<scheme>[A-Za-z][A-Za-z0-9+.\-]*)://(?P<rest>.+)$")


class ImageSource(enum.Enum):
    LOCAL_FILE = "local"
    BMC_TEMP = "bmc-temp"
    REMOTE = "remote"


@dataclass(frozen=True)
class Payload:
    body: dict
    source: ImageSource


def is_local_file(uri):
    """True when ``uri`` names a readable regular file on this machine."""
    return bool(uri) and os.path.isfile(uri) and os.access(uri, os.R_OK)


def parse_image_uri(uri):
    """Split a remote image URI into ``(scheme, remainder)``.

    Raises ValidationError when the scheme is missing or not a supported
    transfer protocol.
    """
    match = _URI_RE.match(uri)
    if not match:
        raise ValidationError(MSG_IMAGE_URI_NO_SCHEMA, stage=STAGE_UPLOAD_FILE)
    scheme = match.group("scheme")
    if scheme.upper() not in TRANSFER_PROTOCOLS:
        raise ValidationError(MSG_IMAGE_URI_ILLEGAL_SCHEMA.format(scheme), stage=STAGE_UPLOAD_FILE)
    return scheme, match.group("rest")


def classify_image_uri(uri):
    """Return the ImageSource for ``uri``, validating remote URIs up front."""
    if is_local_file(uri):
        return ImageSource.LOCAL_FILE
    if uri.startswith(BMC_TEMP_PREFIX):
        return ImageSource.BMC_TEMP
    parse_image_uri(uri)
    return ImageSource.REMOTE


def build_payload(client, request, journal):
    """Build the SimpleUpdate request body for ``request``.

    First match wins: a readable local file is uploaded to BMC temp storage,
    a path already under the BMC temp directory is referenced as is, anything
    else must be a remote URI with a supported transfer protocol.
    """
    uri = request.image_uri
    LOG.info("Update firmware options: ImageURI=%s ActivateMode=%s FirmwareType=%s",
             uri, request.activate_mode, request.firmware_type)

    if is_local_file(uri):
        LOG.info("Firmware image uri `%s` is a local file, uploading it to the BMC.", uri)
        journal.write(STAGE_UPLOAD_FILE, STATE_START)
        try:
            bmc_path = client.upload_file(uri)
        except (BMCError, OSError) as e:
            journal.write_failure(STAGE_UPLOAD_FILE, STATE_FAILED, e)
            raise UpdateError.from_error(e, STAGE_UPLOAD_FILE) from e
        journal.write(STAGE_UPLOAD_FILE, STATE_SUCCESS)
        return Payload({"ImageURI": bmc_path}, ImageSource.LOCAL_FILE)

    if uri.startswith(BMC_TEMP_PREFIX):
        LOG.info("Firmware image uri `%s` is already in BMC temp storage.", uri)
        journal.write(STAGE_UPLOAD_FILE, STATE_SUCCESS, f"Use BMC file {uri}")
        return Payload({"ImageURI": uri}, ImageSource.BMC_TEMP)

    LOG.info("Firmware image uri `%s` is not a local file, BMC will download it.", uri)
    try:
        scheme, _ = parse_image_uri(uri)
    except ValidationError as e:
        LOG.error("Illegal image uri `%s`: %s", uri, e)
        journal.write(STAGE_UPLOAD_FILE, STATE_INVALID_URI, str(e))
        raise
    return Payload({"ImageURI": uri, "TransferProtocol": scheme.upper()}, ImageSource.REMOTE)
