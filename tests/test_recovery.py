import unittest
from unittest.mock import patch, MagicMock
import os
import sys

import requests

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'scripts')))
from rfbmc.client import BMCClient, BMCConnectionError
from rfbmc.update.recovery import request_reset, reset_bmc_and_wait, wait_until_alive


class TestRecovery(unittest.TestCase):

    def setUp(self):
        self.client = MagicMock()
        self.client.host = "10.0.0.5"
        self.client.manager_path.return_value = "/redfish/v1/Managers/1"
        self.sleep = MagicMock()

    def test_request_reset(self):
        request_reset(self.client)
        self.client.request.assert_called_once_with(
            "POST", "/redfish/v1/Managers/1/Actions/Manager.Reset",
            data={"ResetType": "ForceRestart"}, retries=0,
        )

    def test_stops_on_first_alive_probe(self):
        self.client.probe.side_effect = [None, 503, 200]
        self.assertTrue(wait_until_alive(self.client, interval=30, sleep=self.sleep))
        self.assertEqual(self.client.probe.call_count, 3)
        self.assertEqual([c.args[0] for c in self.sleep.call_args_list], [30, 29, 28])

    def test_gives_up_after_countdown(self):
        self.client.probe.return_value = None
        self.assertFalse(wait_until_alive(self.client, interval=4, sleep=self.sleep))
        self.assertEqual(self.client.probe.call_count, 4)
        self.assertEqual([c.args[0] for c in self.sleep.call_args_list], [4, 3, 2, 1])

    def test_reset_settles_before_probing(self):
        self.client.probe.return_value = 200
        self.assertTrue(reset_bmc_and_wait(self.client, interval=30, settle=5, sleep=self.sleep))
        self.assertEqual([c.args[0] for c in self.sleep.call_args_list], [5, 30])
        self.client.request.assert_called_once()

    def test_reset_request_failure_still_waits(self):
        self.client.request.side_effect = BMCConnectionError("Connection error to 10.0.0.5")
        self.client.probe.side_effect = [None, 200]
        self.assertTrue(reset_bmc_and_wait(self.client, interval=3, settle=5, sleep=self.sleep))
        self.assertEqual(self.client.probe.call_count, 2)

    @patch('rfbmc.client.time.sleep')
    def test_reset_is_sent_once_when_connection_drops(self, mock_transport_sleep):
        client = BMCClient("10.0.0.5", "admin", "secret", max_retries=3)
        client._manager_path = "/redfish/v1/Managers/1"
        client.session = MagicMock()
        client.session.request.side_effect = requests.exceptions.ConnectionError("reset by peer")
        client.session.get.side_effect = requests.exceptions.ConnectionError("refused")

        self.assertFalse(reset_bmc_and_wait(client, interval=2, settle=5, sleep=self.sleep))

        self.assertEqual(client.session.request.call_count, 1)
        mock_transport_sleep.assert_not_called()
        self.assertEqual([c.args[0] for c in self.sleep.call_args_list], [5, 2, 1])


if __name__ == '__main__':
    unittest.main()
