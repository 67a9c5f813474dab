"""Durable audit log of a firmware update run.

The file is a JSON document ``{"log": [entry, ...]}`` written incrementally.
Each entry is followed by a separator; closing the journal strips the last
separator and writes the closing brackets, so the file parses on every
exit path.
"""

import json
import logging
import os
from datetime import datetime

from rfbmc import CODE_INTERNAL
from rfbmc.update import (
    MSG_CREATE_FILE_FAILED,
    MSG_CREATE_FOLDER_FAILED,
    UpdateError,
    describe_error,
)

LOG = logging.getLogger(__name__)

LOG_FILENAME = "update-firmware.log"
LOG_HEAD = '{"log":[\n'
LOG_TAIL = "\n]}\n"
SEPARATOR = ",\n"


def local_now():
    return datetime.now().astimezone()


def folder_name(started_at, serial_number):
    return f"{started_at:%Y%m%d%H%M%S}_{serial_number}"


class UpdateJournal:
    """Append-only JSON journal. Use as a context manager."""

    def __init__(self, fh, path, clock=local_now):
        self._fh = fh
        self.path = path
        self._clock = clock
        self._separator_pos = None
        self.entries = 0
        self._fh.write(LOG_HEAD)
        self._fh.flush()

    @classmethod
    def create(cls, base_dir, serial_number, started_at=None, clock=local_now):
        """Create ``<base_dir>/<timestamp>_<serial>/update-firmware.log``."""
        started_at = started_at or clock()
        folder = os.path.join(base_dir, folder_name(started_at, serial_number))
        LOG.info("Creating update log folder %s", folder)
        try:
            os.makedirs(folder)
        except OSError as e:
            LOG.error("Failed to create log folder %s: %s", folder, e)
            raise UpdateError(MSG_CREATE_FOLDER_FAILED, code=CODE_INTERNAL, retryable=False) from e

        path = os.path.join(folder, LOG_FILENAME)
        try:
            fh = open(path, "w+", encoding="utf-8")
        except OSError as e:
            LOG.error("Failed to create log file %s: %s", path, e)
            raise UpdateError(MSG_CREATE_FILE_FAILED, code=CODE_INTERNAL, retryable=False) from e
        return cls(fh, path, clock=clock)

    @property
    def closed(self):
        return self._fh.closed

    def write(self, stage, state, note=""):
        entry = {
            "Time": self._clock().strftime("%Y%m%dT%H%M%S%z"),
            "Stage": stage,
            "State": state,
            "Note": note or "",
        }
        text = json.dumps(entry, indent=4, ensure_ascii=False)
        self._fh.write(text)
        self._separator_pos = self._fh.tell()
        self._fh.write(SEPARATOR)
        self._fh.flush()
        self.entries += 1
        LOG.debug("Journal: %s / %s / %s", stage, state, entry["Note"])

    def write_failure(self, stage, state, error):
        """Record a failure, noting the most specific cause available."""
        self.write(stage, state, describe_error(error))

    def close(self):
        if self._fh.closed:
            return
        if self._separator_pos is not None:
            # only the trailing separator goes
            self._fh.seek(self._separator_pos)
            self._fh.truncate()
        self._fh.write(LOG_TAIL)
        self._fh.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()
        return False
