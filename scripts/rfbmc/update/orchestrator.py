"""Firmware update orchestrator.

Runs at most ``max_rounds`` rounds of build payload -> submit -> (wait for
transfer start) -> wait for completion. Round-local state lives in a fresh
``Round`` each time; the journal stays open for the whole command and is
closed on every exit path.
"""

import enum
import logging
import os
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from rfbmc import (
    CODE_INTERNAL,
    CODE_TRANSPORT,
    REDFISH_SIMPLE_UPDATE,
    RESET_PROBE_INTERVAL,
    RESET_SETTLE_SECONDS,
    UPDATE_MAX_ROUNDS,
)
from rfbmc.client import BMCError
from rfbmc.output import TASK_MAPPINGS, map_fields
from rfbmc.update import (
    ACTIVATE_MODE_AUTO,
    ACTIVATE_MODES,
    FIRMWARE_TYPES,
    MSG_IMAGE_URI_REQUIRED,
    MSG_MODE_ILLEGAL,
    MSG_MODE_REQUIRED,
    MSG_PRODUCT_SN_NOT_SET,
    MSG_TYPE_ILLEGAL,
    STAGE_DOWNLOAD_FILE,
    STAGE_UPDATE,
    STAGE_UPLOAD_FILE,
    STATE_FAILED,
    STATE_IN_PROGRESS,
    STATE_INVALID_URI,
    STATE_START,
    STATE_SUCCESS,
    UpdateError,
    ValidationError,
)
from rfbmc.update.journal import UpdateJournal, local_now
from rfbmc.update.payload import ImageSource, Payload, build_payload, classify_image_uri
from rfbmc.update.poller import TaskHandle, TaskPoller
from rfbmc.update.recovery import reset_bmc_and_wait

LOG = logging.getLogger(__name__)


class UpdateState(enum.Enum):
    VALIDATING = "Validating"
    BUILDING_PAYLOAD = "BuildingPayload"
    SUBMITTING = "Submitting"
    AWAITING_TRANSFER_START = "AwaitingTransferStart"
    AWAITING_COMPLETION = "AwaitingCompletion"
    SUCCEEDED = "Succeeded"
    EXHAUSTED_RETRIES = "ExhaustedRetries"


@dataclass(frozen=True)
class UpdateRequest:
    image_uri: str
    activate_mode: str
    firmware_type: Optional[str] = None

    @classmethod
    def validate(cls, image_uri, activate_mode, firmware_type=None):
        if not image_uri:
            raise ValidationError(MSG_IMAGE_URI_REQUIRED)
        if not activate_mode:
            raise ValidationError(MSG_MODE_REQUIRED)
        if activate_mode not in ACTIVATE_MODES:
            raise ValidationError(MSG_MODE_ILLEGAL)
        if firmware_type is not None and firmware_type not in FIRMWARE_TYPES:
            raise ValidationError(MSG_TYPE_ILLEGAL)
        return cls(image_uri, activate_mode, firmware_type)


@dataclass
class UpdateSession:
    serial_number: str
    started_at: datetime
    journal: UpdateJournal
    request: Optional[UpdateRequest] = None
    is_local_file: bool = False
    rounds: int = 0
    last_error: Optional[UpdateError] = None


@dataclass
class Round:
    number: int
    payload: Optional[Payload] = None
    task: Optional[TaskHandle] = None
    error: Optional[UpdateError] = None


class FirmwareUpdater:
    """Drive one out-of-band firmware update against a single BMC."""

    def __init__(self, client, journal_dir=".", max_rounds=UPDATE_MAX_ROUNDS,
                 reset_on_failure=False, poller=None, sleep=time.sleep, clock=local_now,
                 reset_interval=RESET_PROBE_INTERVAL, reset_settle=RESET_SETTLE_SECONDS):
        self.client = client
        self.journal_dir = journal_dir
        self.max_rounds = max_rounds
        self.reset_on_failure = reset_on_failure
        self.poller = poller or TaskPoller(client, sleep=sleep)
        self.reset_interval = reset_interval
        self.reset_settle = reset_settle
        self._sleep = sleep
        self._clock = clock
        self.state = None
        self.session = None

    def run(self, image_uri, activate_mode, firmware_type=None):
        """Update firmware and return the final task remapped for output.

        Raises UpdateError (or a transport BMCError before the journal
        exists) when the update cannot be completed.
        """
        LOG.info("Start update outband firmware progress now")
        self.session = session = self._open_session()
        with session.journal:
            self._enter(UpdateState.VALIDATING)
            try:
                session.request = UpdateRequest.validate(image_uri, activate_mode, firmware_type)
                source = classify_image_uri(session.request.image_uri)
            except ValidationError as e:
                LOG.error("Invalid update options: %s", e)
                state = STATE_INVALID_URI if e.stage == STAGE_UPLOAD_FILE else STATE_FAILED
                session.journal.write_failure(e.stage, state, e)
                raise
            session.is_local_file = source is ImageSource.LOCAL_FILE
            task = self._run_rounds(session)
        return map_fields(task.document, TASK_MAPPINGS)

    def _enter(self, state, current=None):
        self.state = state
        if current is None:
            LOG.debug("Firmware update state: %s", state.value)
        else:
            LOG.debug("Firmware update round %d state: %s", current.number, state.value)

    def _open_session(self):
        started_at = self._clock()
        system = self.client.get(self.client.system_path())
        serial = (system.get("SerialNumber") or "").strip() if isinstance(system, dict) else ""
        if not serial:
            LOG.error("Failed to get product SN, please make sure product SN is correct.")
            raise UpdateError(MSG_PRODUCT_SN_NOT_SET, code=CODE_INTERNAL, retryable=False)
        LOG.info("Parsing product SN, value is %s.", serial)
        safe_serial = serial.replace(os.sep, "_")
        journal = UpdateJournal.create(self.journal_dir, safe_serial, started_at, clock=self._clock)
        return UpdateSession(serial, started_at, journal)

    def _run_rounds(self, session):
        for number in range(1, self.max_rounds + 1):
            current = Round(number)
            session.rounds = number
            LOG.info("Start to update outband firmware now, round: %d.", number)
            session.journal.write(STAGE_UPDATE, STATE_START, f"Round {number}")
            try:
                return self._run_round(session, current)
            except UpdateError as e:
                current.error = session.last_error = e
                if not e.retryable:
                    LOG.error("Round %d failed and cannot be retried: %s", number, e)
                    raise
                LOG.warning("Round %d failed: %s", number, e)
                if number < self.max_rounds:
                    self._recover(session, e)

        self._enter(UpdateState.EXHAUSTED_RETRIES)
        LOG.error("Firmware update failed after %d rounds.", self.max_rounds)
        raise session.last_error

    def _run_round(self, session, current):
        journal = session.journal
        state = UpdateState.BUILDING_PAYLOAD
        while True:
            self._enter(state, current)

            if state is UpdateState.BUILDING_PAYLOAD:
                current.payload = build_payload(self.client, session.request, journal)
                state = UpdateState.SUBMITTING

            elif state is UpdateState.SUBMITTING:
                current.task = self._submit(journal, current.payload)
                if current.payload.source is ImageSource.REMOTE:
                    state = UpdateState.AWAITING_TRANSFER_START
                else:
                    state = UpdateState.AWAITING_COMPLETION

            elif state is UpdateState.AWAITING_TRANSFER_START:
                LOG.info("Waiting for BMC download update firmware file ...")
                journal.write(STAGE_DOWNLOAD_FILE, STATE_START, "Start download remote file to BMC")
                try:
                    current.task = self.poller.wait_until_started(current.task)
                except UpdateError as e:
                    LOG.error("Failed to download update firmware file: %s", e)
                    journal.write_failure(STAGE_DOWNLOAD_FILE, STATE_FAILED, e)
                    raise
                journal.write(STAGE_DOWNLOAD_FILE, STATE_SUCCESS, "BMC started downloading remote file")
                state = UpdateState.AWAITING_COMPLETION

            elif state is UpdateState.AWAITING_COMPLETION:
                try:
                    current.task = self.poller.wait_until_finished(current.task)
                except UpdateError as e:
                    journal.write_failure(STAGE_UPDATE, STATE_FAILED, e)
                    raise
                if not current.task.succeeded:
                    err = UpdateError(
                        current.task.failure_message(),
                        messages=[m.message for m in current.task.messages if m.message],
                    )
                    journal.write_failure(STAGE_UPDATE, STATE_FAILED, err)
                    raise err
                journal.write(STAGE_UPDATE, STATE_SUCCESS, f"Task {current.task.id or ''} {current.task.state}".strip())
                self._enter(UpdateState.SUCCEEDED, current)
                return current.task

    def _submit(self, journal, payload):
        try:
            body = self.client.post(REDFISH_SIMPLE_UPDATE, payload.body)
            task = self.poller.handle_from_response(body)
        except BMCError as e:
            LOG.error("Update request rejected: %s", e)
            journal.write_failure(STAGE_UPDATE, STATE_FAILED, e)
            if isinstance(e, UpdateError):
                raise
            raise UpdateError.from_error(e, STAGE_UPDATE) from e
        journal.write(STAGE_UPDATE, STATE_IN_PROGRESS, f"Task {task.id or task.url or ''} {task.state}".strip())
        return task

    def _recover(self, session, error):
        """Reset the BMC before the next round when policy allows it.

        Only for Auto activation, and only for failures that point at the BMC
        itself: it could not be reached or refused the image upload.
        """
        if not self.reset_on_failure or session.request.activate_mode != ACTIVATE_MODE_AUTO:
            return
        upload_refused = error.stage == STAGE_UPLOAD_FILE and isinstance(error.__cause__, BMCError)
        if error.code != CODE_TRANSPORT and not upload_refused:
            return
        LOG.info("Round %d failed and activate mode is Auto, will try reset BMC now.", session.rounds)
        session.journal.write(STAGE_UPDATE, STATE_IN_PROGRESS, "Restart BMC before next round")
        alive = reset_bmc_and_wait(
            self.client, interval=self.reset_interval, settle=self.reset_settle, sleep=self._sleep,
        )
        if not alive:
            LOG.warning("BMC %s still unreachable after reset.", self.client.host)
