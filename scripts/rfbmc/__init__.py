"""rfbmc - Redfish BMC Management CLI"""

__version__ = "1.0.0"

# Redfish API path constants
REDFISH_BASE = "/redfish/v1"
REDFISH_ROOT = f"{REDFISH_BASE}/"
REDFISH_SYSTEMS = f"{REDFISH_BASE}/Systems"
REDFISH_MANAGERS = f"{REDFISH_BASE}/Managers"
REDFISH_CHASSIS = f"{REDFISH_BASE}/Chassis"
REDFISH_UPDATE_SERVICE = f"{REDFISH_BASE}/UpdateService"
REDFISH_FIRMWARE_INVENTORY = f"{REDFISH_UPDATE_SERVICE}/FirmwareInventory"
REDFISH_SIMPLE_UPDATE = f"{REDFISH_UPDATE_SERVICE}/Actions/UpdateService.SimpleUpdate"

# Relative to the manager resource
MANAGER_RESET_ACTION = "Actions/Manager.Reset"
MANAGER_DOWNLOAD_ACTION = "Actions/Oem/Huawei/Manager.GeneralDownload"

# Uploaded images land in the controller's web temp storage
BMC_TEMP_DIR = "/tmp/web"
BMC_TEMP_PREFIX = "/tmp/"

# Default retry/backoff settings
DEFAULT_MAX_RETRIES = 3
DEFAULT_TIMEOUT = 30
DEFAULT_UPLOAD_TIMEOUT = 600
DEFAULT_PORT = 443

# Firmware update defaults
UPDATE_MAX_ROUNDS = 3
TASK_POLL_INTERVAL = 3
TASK_START_MAX_POLLS = 100
TASK_FINISH_MAX_POLLS = 600
RESET_SETTLE_SECONDS = 5
RESET_PROBE_INTERVAL = 30

# Command result codes
CODE_OK = 0
CODE_OPTION_ERROR = 120
CODE_INTERNAL = 130
CODE_LOAD_SYSTEM_ID = 131
CODE_PARSE_RESPONSE_JSON = 132
CODE_UNKNOWN_RESPONSE_FORMAT = 133
CODE_TRANSPORT = 140
CODE_REQUEST_FAILED = 150

# Output envelope states
STATE_SUCCESS = "Success"
STATE_FAILURE = "Failure"
