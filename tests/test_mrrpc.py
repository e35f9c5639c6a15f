import io
import json
import os

import pytest

from labkit.labgob import LabDecoder, LabEncoder
from labkit.mrrpc import (
    KeyValue,
    RequestWorkReply,
    Task,
    TaskType,
    WorkCompleteArgs,
    coordinator_sock,
)


def _round_trip(value):
    buf = io.BytesIO()
    LabEncoder(buf).encode(value)
    buf.seek(0)
    return LabDecoder(buf).decode()


def test_task_type_values():
    assert [t.value for t in TaskType] == [0, 1, 3, 4]
    assert TaskType(3) is TaskType.WAIT


def test_coordinator_sock():
    sock = coordinator_sock()
    assert sock.startswith("/var/tmp/5840-mr-")
    assert sock.endswith(str(os.getuid()))


def test_key_value_json_round_trip():
    kv = KeyValue("word", "1")
    encoded = json.dumps(kv.to_dict())
    assert json.loads(encoded) == {"Key": "word", "Value": "1"}
    assert KeyValue.from_dict(json.loads(encoded)) == kv


def test_key_value_from_bad_data():
    with pytest.raises(ValueError):
        KeyValue.from_dict(["word", "1"])
    with pytest.raises(ValueError):
        KeyValue.from_dict({"Key": 3, "Value": "1"})


def test_empty_reply_means_nothing_to_do():
    reply = RequestWorkReply()
    assert reply.type_of_task is TaskType.WAIT
    assert reply.task is None


def test_reply_survives_encoding():
    reply = RequestWorkReply(TaskType.MAP, Task(2, "pg-x.txt", "INPROGRESS", 10))
    decoded = _round_trip(reply)
    assert decoded == reply
    assert decoded.task is not reply.task
    assert decoded.type_of_task is TaskType.MAP


def test_work_complete_args_survive_encoding():
    args = WorkCompleteArgs(5, TaskType.REDUCE)
    assert _round_trip(args) == args


def test_task_defaults():
    task = Task(0)
    assert (task.location, task.state, task.nfiles) == ("", "IDLE", 0)