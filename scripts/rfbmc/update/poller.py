"""Poll Redfish async tasks until they start or reach a terminal state."""

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional

from rfbmc import (
    CODE_UNKNOWN_RESPONSE_FORMAT,
    TASK_FINISH_MAX_POLLS,
    TASK_POLL_INTERVAL,
    TASK_START_MAX_POLLS,
)
from rfbmc.client import BMCError
from rfbmc.output import task_percentage
from rfbmc.update import STAGE_DOWNLOAD_FILE, STAGE_UPDATE, UpdateError

LOG = logging.getLogger(__name__)

TASK_FINISHED_STATES = ("Completed", "Exception", "Killed", "Cancelled", "Interrupted")
TASK_SUCCESS_STATES = ("Completed",)
TASK_NOT_STARTED_STATES = ("New", "Pending", "Starting")


@dataclass
class TaskMessage:
    id: Optional[str]
    message: Optional[str]
    severity: Optional[str]
    resolution: Optional[str]


@dataclass
class TaskHandle:
    """Last known state of a controller task. Re-fetched on every poll."""

    url: Optional[str]
    id: Optional[str]
    state: str
    percent: Optional[int]
    messages: List[TaskMessage] = field(default_factory=list)
    document: dict = field(default_factory=dict)

    @classmethod
    def from_document(cls, doc):
        if not isinstance(doc, dict) or not doc.get("TaskState"):
            raise UpdateError(
                "Unexpected task document returned by BMC.",
                code=CODE_UNKNOWN_RESPONSE_FORMAT,
            )
        raw_messages = doc.get("Messages")
        messages = []
        for m in raw_messages if isinstance(raw_messages, list) else []:
            if isinstance(m, dict):
                messages.append(TaskMessage(
                    m.get("MessageId"), m.get("Message"), m.get("Severity"), m.get("Resolution"),
                ))
        return cls(
            url=doc.get("@odata.id"),
            id=doc.get("Id"),
            state=doc["TaskState"],
            percent=task_percentage(doc),
            messages=messages,
            document=doc,
        )

    @classmethod
    def completed(cls, doc):
        """Handle for a request the BMC finished synchronously."""
        return cls(url=None, id=None, state="Completed", percent=100, document=doc or {})

    @property
    def finished(self):
        return self.state in TASK_FINISHED_STATES

    @property
    def succeeded(self):
        return self.state in TASK_SUCCESS_STATES

    @property
    def started(self):
        return self.finished or self.state not in TASK_NOT_STARTED_STATES or bool(self.percent)

    def failure_message(self):
        for m in self.messages:
            if m.message:
                return m.message
        return f"Task {self.id or self.url} finished with state {self.state}."


class TaskPoller:
    """Blocking waits on a task resource at a fixed interval."""

    def __init__(self, client, interval=TASK_POLL_INTERVAL, start_max_polls=TASK_START_MAX_POLLS,
                 finish_max_polls=TASK_FINISH_MAX_POLLS, sleep=time.sleep):
        self.client = client
        self.interval = interval
        self.start_max_polls = start_max_polls
        self.finish_max_polls = finish_max_polls
        self._sleep = sleep

    def handle_from_response(self, body):
        """Turn a submit response into a TaskHandle.

        The BMC may answer with a task document, a bare task reference, or
        a plain success body when it completed the request synchronously.
        """
        if isinstance(body, dict) and body.get("TaskState"):
            return TaskHandle.from_document(body)
        if isinstance(body, dict) and body.get("@odata.id"):
            return self.fetch(body["@odata.id"])
        return TaskHandle.completed(body)

    def fetch(self, task_url, stage=STAGE_UPDATE):
        try:
            doc = self.client.get(task_url)
        except BMCError as e:
            raise UpdateError.from_error(e, stage) from e
        handle = TaskHandle.from_document(doc)
        if handle.url is None:
            handle.url = task_url
        return handle

    def wait_until_started(self, task):
        """Wait until the BMC has begun working on ``task``.

        A task that finishes unsuccessfully before it is seen running is a
        failure, as is one that never leaves the not-started states.
        """
        polls = 0
        while True:
            if task.finished and not task.succeeded:
                raise UpdateError(task.failure_message(), stage=STAGE_DOWNLOAD_FILE,
                                  messages=[m.message for m in task.messages if m.message])
            if task.started:
                LOG.info("Task %s started, state %s, %s%%", task.id, task.state, task.percent)
                return task
            if task.url is None or polls >= self.start_max_polls:
                raise UpdateError(
                    f"Timed out waiting for task {task.id or task.url} to start.",
                    stage=STAGE_DOWNLOAD_FILE,
                )
            self._sleep(self.interval)
            polls += 1
            task = self.fetch(task.url, stage=STAGE_DOWNLOAD_FILE)

    def wait_until_finished(self, task):
        """Poll ``task`` until it reaches a finished state and return it.

        The caller decides pass/fail from ``task.succeeded``.
        """
        polls = 0
        last_seen = None
        while not task.finished:
            if task.url is None or polls >= self.finish_max_polls:
                raise UpdateError(f"Timed out waiting for task {task.id or task.url} to finish.")
            if (task.state, task.percent) != last_seen:
                LOG.info("Task %s is %s, %s%% complete", task.id, task.state, task.percent)
                last_seen = (task.state, task.percent)
            self._sleep(self.interval)
            polls += 1
            task = self.fetch(task.url)
        LOG.info("Task %s finished with state %s", task.id, task.state)
        return task
