import unittest
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'scripts')))
from rfbmc.output import (
    TASK_MAPPINGS,
    _format_human,
    failure_result,
    map_fields,
    resolve_pointer,
    success_result,
    task_percentage,
)

# --- Mock Data ---
MOCK_TASK = {
    "@odata.id": "/redfish/v1/TaskService/Tasks/2",
    "Id": "2",
    "Name": "Upgarde Task",
    "TaskState": "Completed",
    "StartTime": "2024-03-07T09:05:01+08:00",
    "EndTime": "2024-03-07T09:12:44+08:00",
    "TaskStatus": "OK",
    "Messages": [{
        "MessageId": "iBMC.1.0.UpgradeSuccess",
        "Message": "The upgrade is successful.",
        "Severity": "OK",
        "Resolution": "None",
        "RelatedProperties": [],
    }],
    "Oem": {"Huawei": {"TaskPercentage": "100%"}},
}


class TestFieldMapping(unittest.TestCase):

    def test_resolve_pointer(self):
        self.assertEqual(resolve_pointer(MOCK_TASK, "/Messages/0/Severity"), "OK")
        self.assertEqual(resolve_pointer(MOCK_TASK, "/Oem/Huawei/TaskPercentage"), "100%")
        self.assertIs(resolve_pointer(MOCK_TASK, "/"), MOCK_TASK)
        self.assertIsNone(resolve_pointer(MOCK_TASK, "/Messages/5/Message"))
        self.assertIsNone(resolve_pointer(MOCK_TASK, "/Id/Nested"))

    def test_escaped_pointer_tokens(self):
        doc = {"@odata.id": "/x", "a/b": {"c~d": 1}}
        self.assertEqual(resolve_pointer(doc, "/a~1b/c~0d"), 1)

    def test_task_mappings(self):
        mapped = map_fields(MOCK_TASK, TASK_MAPPINGS)
        self.assertEqual(mapped, {
            "TaskId": "2",
            "TaskName": "Upgarde Task",
            "State": "Completed",
            "StartTime": "2024-03-07T09:05:01+08:00",
            "EndTime": "2024-03-07T09:12:44+08:00",
            "TaskStatus": "OK",
            "TaskPercentage": "100%",
            "Messages": [{
                "MessageId": "iBMC.1.0.UpgradeSuccess",
                "Message": "The upgrade is successful.",
                "Severity": "OK",
                "Resolution": "None",
            }],
        })

    def test_missing_fields_map_to_none(self):
        mapped = map_fields({"Id": "1", "TaskState": "Running"}, TASK_MAPPINGS)
        self.assertIsNone(mapped["EndTime"])
        self.assertIsNone(mapped["TaskPercentage"])
        self.assertIsNone(mapped["Messages"])

    def test_task_percentage(self):
        self.assertEqual(task_percentage({"PercentComplete": 30}), 30)
        self.assertEqual(task_percentage({"Oem": {"Vendor": {"TaskPercentage": " 7% "}}}), 7)
        self.assertIsNone(task_percentage({"Oem": {"Vendor": {"TaskPercentage": "n/a"}}}))
        self.assertIsNone(task_percentage({}))

    def test_task_percentage_ignores_malformed_oem(self):
        self.assertIsNone(task_percentage({"Oem": ["Huawei"]}))
        self.assertIsNone(task_percentage({"Oem": "45%"}))
        self.assertIsNone(task_percentage({"Oem": {"Huawei": "45%"}}))

    def test_task_messages_tolerate_non_list(self):
        mapped = map_fields({"TaskState": "Running", "Messages": "busy"}, TASK_MAPPINGS)
        self.assertEqual(mapped["Messages"], [])


class TestEnvelopes(unittest.TestCase):

    def test_success_default_message(self):
        self.assertEqual(success_result(), {
            "State": "Success",
            "Message": ["Success: successfully completed request"],
        })

    def test_failure_wraps_single_message(self):
        self.assertEqual(failure_result("Error: product SN is not correct."), {
            "State": "Failure",
            "Message": ["Error: product SN is not correct."],
        })

    def test_human_task_output(self):
        text = _format_human(success_result(map_fields(MOCK_TASK, TASK_MAPPINGS)))
        self.assertIn("Task: 2 (Upgarde Task)", text)
        self.assertIn("Progress: 100%", text)
        self.assertIn("[OK] The upgrade is successful.", text)

    def test_human_firmware_output(self):
        data = {"Firmware": [{"Name": "ActiveBMC", "Type": "BMC", "Version": "3.01.05"}]}
        self.assertEqual(_format_human(data), "  ActiveBMC [BMC]: 3.01.05")

    def test_human_voltage_output(self):
        data = {"Voltages": [{"Name": "SYS 3.3V", "ReadingVolts": None, "UpperThresholdCritical": 3.6}]}
        self.assertEqual(_format_human(data), "  SYS 3.3V: N/A (critical -..3.6)")
        self.assertEqual(_format_human({"Voltages": []}), "No voltage sensors found.")


if __name__ == '__main__':
    unittest.main()
