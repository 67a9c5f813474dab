"""Out-of-band firmware update: payload building, task polling, recovery, journaling."""

from rfbmc import CODE_OPTION_ERROR, CODE_REQUEST_FAILED
from rfbmc.client import BMCError

# Journal stages
STAGE_UPDATE = "Update firmware"
STAGE_UPLOAD_FILE = "Upload File"
STAGE_DOWNLOAD_FILE = "Download File"

# Journal states
STATE_START = "Start"
STATE_IN_PROGRESS = "In Progress"
STATE_SUCCESS = "Success"
STATE_FAILED = "Failed"
STATE_INVALID_URI = "Invalid URI"

ACTIVATE_MODE_AUTO = "Auto"
ACTIVATE_MODE_MANUAL = "Manual"
ACTIVATE_MODES = (ACTIVATE_MODE_AUTO, ACTIVATE_MODE_MANUAL)
FIRMWARE_TYPES = ("BMC", "BIOS", "CPLD", "PSUFW")
TRANSFER_PROTOCOLS = ("HTTPS", "SCP", "SFTP", "CIFS", "TFTP", "NFS")

MSG_IMAGE_URI_REQUIRED = "Error: option `image-uri` is required."
MSG_IMAGE_URI_NO_SCHEMA = "Error: URI is not a local file nor a remote network protocol file."
MSG_IMAGE_URI_ILLEGAL_SCHEMA = "Error: Protocol `{}` is not supported."
MSG_MODE_REQUIRED = "Error: option `activate-mode` is required."
MSG_MODE_ILLEGAL = "Error: option `activate-mode` is illegal, available choices: Auto, Manual."
MSG_TYPE_ILLEGAL = "Error: option `firmware-type` is illegal, available choices: BMC, BIOS, CPLD, PSUFW."
MSG_PRODUCT_SN_NOT_SET = "Error: product SN is not correct."
MSG_CREATE_FOLDER_FAILED = "Error: failed to create log folder."
MSG_CREATE_FILE_FAILED = "Error: failed to create log file."


class UpdateError(BMCError):
    """A failure of the firmware update flow.

    ``retryable`` errors abandon the current round only; anything else ends
    the command immediately.
    """

    def __init__(self, message, code=CODE_REQUEST_FAILED, retryable=True,
                 stage=STAGE_UPDATE, messages=None):
        super().__init__(message)
        self.code = code
        self.retryable = retryable
        self.stage = stage
        self.messages = messages or []

    @classmethod
    def from_error(cls, error, stage, retryable=True, message=None):
        """Wrap a transport error, keeping its code and Redfish messages."""
        return cls(
            message or describe_error(error),
            code=getattr(error, "code", CODE_REQUEST_FAILED),
            retryable=retryable,
            stage=stage,
            messages=list(getattr(error, "messages", [])),
        )


class ValidationError(UpdateError):
    """Bad user input. Never retried."""

    def __init__(self, message, stage=STAGE_UPDATE):
        super().__init__(message, code=CODE_OPTION_ERROR, retryable=False, stage=stage)


def describe_error(error):
    """Most specific human-readable text for an error.

    The controller's first message wins over the generic transport text.
    """
    messages = getattr(error, "messages", None)
    if messages:
        return messages[0]
    return str(error)
