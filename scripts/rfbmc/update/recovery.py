"""Force-restart the BMC and wait until it answers again."""

import logging
import time

from rfbmc import MANAGER_RESET_ACTION, RESET_PROBE_INTERVAL, RESET_SETTLE_SECONDS
from rfbmc.client import BMCError

LOG = logging.getLogger(__name__)


def request_reset(client, reset_type="ForceRestart"):
    """POST Manager.Reset to the BMC once, without transport retries. Returns the response body."""
    url = f"{client.manager_path()}/{MANAGER_RESET_ACTION}"
    return client.request("POST", url, data={"ResetType": reset_type}, retries=0).body


def wait_until_alive(client, interval=RESET_PROBE_INTERVAL, sleep=time.sleep):
    """Probe the service root with a linearly decreasing backoff.

    Sleeps ``interval`` seconds, probes, decrements the interval, and stops on
    the first response below 300. Worst case waits interval * (interval + 1) / 2
    seconds. Returns True when the BMC answered.
    """
    while interval > 0:
        sleep(interval)
        status = client.probe()
        if status is not None and status < 300:
            LOG.info("BMC %s is alive now.", client.host)
            return True
        interval -= 1
        LOG.info("BMC %s is down now. Next check will be %d seconds later.", client.host, interval)
    LOG.warning("BMC %s did not come back in time.", client.host)
    return False


def reset_bmc_and_wait(client, interval=RESET_PROBE_INTERVAL, settle=RESET_SETTLE_SECONDS,
                       sleep=time.sleep):
    """Restart the BMC and wait for it to come back.

    The reset request is fire-and-forget; its failure does not stop the wait.
    Returns True when the BMC answered before the backoff ran out.
    """
    LOG.info("Restarting BMC %s and waiting for it to come back", client.host)
    try:
        request_reset(client)
    except BMCError as e:
        LOG.warning("Reset request to %s failed, waiting anyway: %s", client.host, e)
    sleep(settle)
    return wait_until_alive(client, interval=interval, sleep=sleep)
