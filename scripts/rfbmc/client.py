"""BMCClient - Redfish HTTP client with retry and exponential backoff."""

import json
import logging
import os
import time
from dataclasses import dataclass, field

import requests
import urllib3

from rfbmc import (
    BMC_TEMP_DIR,
    CODE_INTERNAL,
    CODE_LOAD_SYSTEM_ID,
    CODE_PARSE_RESPONSE_JSON,
    CODE_REQUEST_FAILED,
    CODE_TRANSPORT,
    DEFAULT_MAX_RETRIES,
    DEFAULT_PORT,
    DEFAULT_TIMEOUT,
    DEFAULT_UPLOAD_TIMEOUT,
    MANAGER_DOWNLOAD_ACTION,
    REDFISH_CHASSIS,
    REDFISH_FIRMWARE_INVENTORY,
    REDFISH_MANAGERS,
    REDFISH_ROOT,
    REDFISH_SYSTEMS,
)

# BMCs ship self-signed certificates
urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

LOG = logging.getLogger(__name__)


class BMCError(Exception):
    """Base exception for BMC operations."""
    code = CODE_INTERNAL


class BMCConnectionError(BMCError):
    """Connection-level failures (timeout, refused, DNS)."""
    code = CODE_TRANSPORT


class BMCAuthError(BMCError):
    """Authentication failures (401, 403)."""
    code = CODE_REQUEST_FAILED


class BMCHTTPError(BMCError):
    """HTTP-level errors with status code."""
    code = CODE_REQUEST_FAILED

    def __init__(self, message, status_code=None, body=None, messages=None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.messages = messages or []


class BMCResponseError(BMCError):
    """Response body could not be decoded or has an unexpected shape."""
    code = CODE_PARSE_RESPONSE_JSON


def parse_error_messages(body):
    """Extract human-readable messages from a Redfish error body.

    Prefers ``@Message.ExtendedInfo`` entries, falls back to the top level
    ``error.message``. Returns an empty list for anything unparsable.
    """
    if not body:
        return []
    try:
        doc = json.loads(body) if isinstance(body, (str, bytes)) else body
    except ValueError:
        return []
    if not isinstance(doc, dict):
        return []

    err = doc.get("error", doc)
    messages = []
    for info in err.get("@Message.ExtendedInfo", []) or []:
        text = info.get("Message")
        if not text:
            continue
        resolution = info.get("Resolution")
        if resolution and resolution.lower() != "none":
            text = f"{text} Resolution: {resolution}"
        messages.append(text)
    if not messages and err.get("message"):
        messages.append(err["message"])
    return messages


@dataclass
class RedfishResponse:
    status_code: int
    headers: dict = field(default_factory=dict)
    body: object = None

    @property
    def etag(self):
        return self.headers.get("ETag")


class BMCClient:
    """Redfish API client for a single BMC endpoint.

    Includes retry with exponential backoff for transient errors.
    """

    # HTTP status codes that are retryable (server-side transient)
    RETRYABLE_STATUS = {500, 502, 503, 504}

    def __init__(self, host, username, password, port=DEFAULT_PORT,
                 max_retries=DEFAULT_MAX_RETRIES, timeout=DEFAULT_TIMEOUT):
        self.host = host
        self.port = port
        self.base_url = f"https://{host}" if port == DEFAULT_PORT else f"https://{host}:{port}"
        self.username = username
        self.max_retries = max_retries
        self.timeout = timeout
        self.session = requests.Session()
        self.session.auth = (username, password)
        self.session.verify = False
        self._system_path = None
        self._manager_path = None
        self._chassis_path = None

    def _url(self, path):
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}{path}"

    def request(self, method, path, data=None, headers=None, files=None,
                retries=None, timeout=None, stream=False):
        """Make an HTTP request with retry/backoff.

        Args:
            method: HTTP method (GET, POST, PATCH, DELETE)
            path: URL path (e.g. /redfish/v1/Systems/1)
            data: Dict to send as JSON body
            headers: Additional headers dict
            files: requests-style multipart files mapping
            retries: Override the client's retry count for this call
            timeout: Override the client's timeout for this call
            stream: Leave the body unread; ``body`` is the raw requests response

        Returns:
            RedfishResponse with parsed JSON body

        Raises:
            BMCAuthError: On 401/403
            BMCHTTPError: On non-retryable HTTP errors
            BMCConnectionError: On connection failures after all retries
        """
        url = self._url(path)
        retries = self.max_retries if retries is None else retries
        timeout = timeout or self.timeout

        last_error = None
        for attempt in range(retries + 1):
            if attempt > 0:
                sleep_time = 2 ** attempt  # 2s, 4s, 8s
                LOG.debug("Retrying %s %s in %ss (attempt %d)", method, path, sleep_time, attempt + 1)
                time.sleep(sleep_time)

            try:
                resp = self.session.request(
                    method, url, json=data, headers=headers, files=files,
                    timeout=timeout, stream=stream,
                )
            except requests.exceptions.Timeout as e:
                last_error = BMCConnectionError(f"Timed out talking to {self.host}: {e}")
                continue
            except requests.exceptions.RequestException as e:
                last_error = BMCConnectionError(f"Connection error to {self.host}: {e}")
                continue

            status = resp.status_code
            if status in (401, 403):
                raise BMCAuthError(f"Authentication failed for {self.host}: HTTP {status}")
            if status >= 400:
                err_body = resp.text
                err = BMCHTTPError(
                    f"HTTP {status} from {self.host}{path}",
                    status_code=status,
                    body=err_body,
                    messages=parse_error_messages(err_body),
                )
                if status in self.RETRYABLE_STATUS:
                    LOG.warning("HTTP %s from %s%s, will retry", status, self.host, path)
                    last_error = err
                    continue
                raise err

            if stream:
                return RedfishResponse(status, dict(resp.headers), resp)
            return RedfishResponse(status, dict(resp.headers), self._decode(resp))

        # All retries exhausted
        raise last_error

    def _decode(self, resp):
        if not resp.content:
            return {"Success": {"Message": f"Action completed with status {resp.status_code}."}}
        try:
            return resp.json()
        except ValueError:
            raise BMCResponseError(
                f"Could not decode JSON response from {self.host}: {resp.text[:200]}"
            )

    def get(self, path):
        """GET a Redfish resource."""
        return self.request("GET", path).body

    def post(self, path, data=None):
        """POST to a Redfish resource."""
        return self.request("POST", path, data=data).body

    def patch(self, path, data, etag=None):
        """PATCH a Redfish resource, guarded by If-Match when an ETag is given."""
        headers = {"If-Match": etag} if etag else None
        return self.request("PATCH", path, data=data, headers=headers).body

    def delete(self, path):
        """DELETE a Redfish resource."""
        return self.request("DELETE", path).body

    def probe(self, path=REDFISH_ROOT):
        """Single GET used to check reachability. Returns status code or None."""
        try:
            resp = self.session.get(self._url(path), timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            LOG.debug("Probe of %s failed: %s", self.host, e)
            return None
        return resp.status_code

    def _first_member(self, collection):
        data = self.get(collection)
        members = data.get("Members", [])
        uri = members[0].get("@odata.id", "") if members else ""
        if not uri:
            err = BMCError(f"No members found in {collection} on {self.host}")
            err.code = CODE_LOAD_SYSTEM_ID
            raise err
        return uri.rstrip("/")

    def system_path(self):
        """Resource path of the (first) computer system, e.g. /redfish/v1/Systems/1."""
        if self._system_path is None:
            self._system_path = self._first_member(REDFISH_SYSTEMS)
        return self._system_path

    def manager_path(self):
        """Resource path of the (first) manager, e.g. /redfish/v1/Managers/1."""
        if self._manager_path is None:
            self._manager_path = self._first_member(REDFISH_MANAGERS)
        return self._manager_path

    def chassis_path(self):
        """Resource path of the (first) chassis, e.g. /redfish/v1/Chassis/1."""
        if self._chassis_path is None:
            self._chassis_path = self._first_member(REDFISH_CHASSIS)
        return self._chassis_path

    def upload_file(self, local_path):
        """Upload a local file to the BMC temp storage.

        Returns the path of the file on the BMC.
        """
        filename = os.path.basename(local_path)
        LOG.info("Uploading %s to %s", local_path, self.host)
        with open(local_path, "rb") as fh:
            files = {"imgfile": (filename, fh, "application/octet-stream")}
            # a partially consumed file handle cannot be replayed
            self.request(
                "POST", REDFISH_FIRMWARE_INVENTORY, files=files,
                retries=0, timeout=DEFAULT_UPLOAD_TIMEOUT,
            )
        return f"{BMC_TEMP_DIR}/{filename}"

    def download_file(self, bmc_path, local_path):
        """Download a file from the BMC temp storage to a local path."""
        url = f"{self.manager_path()}/{MANAGER_DOWNLOAD_ACTION}"
        payload = {"TransferProtocol": "HTTPS", "Path": bmc_path}
        resp = self.request(
            "POST", url, data=payload, retries=0,
            timeout=DEFAULT_UPLOAD_TIMEOUT, stream=True,
        )
        written = 0
        with resp.body as stream:
            try:
                with open(local_path, "wb") as fh:
                    for chunk in stream.iter_content(chunk_size=64 * 1024):
                        if chunk:
                            fh.write(chunk)
                            written += len(chunk)
            except OSError as e:
                LOG.error("Download of %s from %s failed after %d bytes", bmc_path, self.host, written)
                if os.path.exists(local_path):
                    os.remove(local_path)
                if isinstance(e, requests.exceptions.RequestException):
                    raise BMCConnectionError(f"Download from {self.host} interrupted: {e}") from e
                raise
        LOG.info("Downloaded %s from %s to %s (%d bytes)", bmc_path, self.host, local_path, written)
        return written
