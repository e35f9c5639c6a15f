import os
import shutil
import tempfile
import time

import pytest

from labkit.coordinator import (
    REQUEST_WORK,
    WORK_COMPLETE,
    Coordinator,
    TaskList,
    TaskState,
)
from labkit.labrpc import RPCError
from labkit.mrrpc import TaskType, WorkCompleteArgs
from labkit.worker import call


@pytest.fixture
def sock_dir():
    path = tempfile.mkdtemp(prefix="mrc", dir="/tmp")
    yield path
    shutil.rmtree(path, ignore_errors=True)


def test_map_tasks_handed_out_in_order():
    with Coordinator(["f0.txt", "f1.txt"], 3) as c:
        first = c.handle_request_work()
        second = c.handle_request_work()
        assert first.type_of_task is TaskType.MAP
        assert (first.task.id, first.task.location, first.task.nfiles) == (0, "f0.txt", 3)
        assert first.task.state == "INPROGRESS"
        assert (second.task.id, second.task.location) == (1, "f1.txt")
        assert c.handle_request_work().type_of_task is TaskType.WAIT


def test_reduce_after_all_maps_complete():
    with Coordinator(["a", "b"], 2) as c:
        c.handle_request_work()
        c.handle_request_work()
        c.handle_work_complete(WorkCompleteArgs(0, TaskType.MAP))
        assert c.handle_request_work().type_of_task is TaskType.WAIT
        c.handle_work_complete(WorkCompleteArgs(1, TaskType.MAP))
        reply = c.handle_request_work()
        assert reply.type_of_task is TaskType.REDUCE
        assert (reply.task.id, reply.task.nfiles) == (0, 2)


def test_done_and_stop():
    with Coordinator(["a"], 1) as c:
        c.handle_request_work()
        c.handle_work_complete(WorkCompleteArgs(0, TaskType.MAP))
        c.handle_request_work()
        assert not c.done()
        c.handle_work_complete(WorkCompleteArgs(0, TaskType.REDUCE))
        assert c.done()
        assert c.handle_request_work().type_of_task is TaskType.STOP


def test_empty_job_is_done():
    with Coordinator([], 0) as c:
        assert c.done()
        assert c.handle_request_work().type_of_task is TaskType.STOP


def test_double_completion_counts_once():
    with Coordinator(["a", "b"], 1) as c:
        c.handle_request_work()
        c.handle_work_complete(WorkCompleteArgs(0, TaskType.MAP))
        c.handle_work_complete(WorkCompleteArgs(0, TaskType.MAP))
        assert c.map_tasks.num_complete == 1


def test_unknown_task_id_rejected():
    with Coordinator(["a"], 1) as c:
        with pytest.raises(IndexError):
            c.handle_work_complete(WorkCompleteArgs(5, TaskType.MAP))


def test_negative_reduce_count_rejected():
    with pytest.raises(ValueError):
        Coordinator(["a"], -1)


def test_reply_task_is_a_copy():
    with Coordinator(["a"], 1) as c:
        reply = c.handle_request_work()
        reply.task.state = TaskState.IDLE.value
        assert c.map_tasks.tasks[0].state == TaskState.IN_PROGRESS
        assert c.handle_request_work().type_of_task is TaskType.WAIT


def test_stalled_task_is_reassigned():
    with Coordinator(["a"], 1, task_timeout=0.05) as c:
        first = c.handle_request_work()
        time.sleep(0.3)
        again = c.handle_request_work()
        assert again.type_of_task is TaskType.MAP
        assert again.task.id == first.task.id


def test_completed_task_is_not_reassigned():
    with Coordinator(["a", "b"], 1, task_timeout=0.05) as c:
        c.handle_request_work()
        c.handle_request_work()
        c.handle_work_complete(WorkCompleteArgs(0, TaskType.MAP))
        time.sleep(0.3)
        reply = c.handle_request_work()
        assert reply.task.id == 1
        assert c.map_tasks.tasks[0].state == TaskState.COMPLETE


def test_task_list_builders():
    maps = TaskList.for_map(["x", "y"], 4)
    reduces = TaskList.for_reduce(4, 2)
    assert [t.location for t in maps.tasks] == ["x", "y"]
    assert {t.nfiles for t in maps.tasks} == {4}
    assert [t.id for t in reduces.tasks] == [0, 1, 2, 3]
    assert {t.nfiles for t in reduces.tasks} == {2}
    assert not maps.finished


def test_serve_over_socket(sock_dir):
    path = os.path.join(sock_dir, "c.sock")
    with Coordinator(["in.txt"], 2) as c:
        assert c.serve(path) == path
        reply = call(REQUEST_WORK, None, path)
        assert reply.type_of_task is TaskType.MAP
        assert reply.task.location == "in.txt"
        assert call(WORK_COMPLETE, WorkCompleteArgs(0, TaskType.MAP), path) is None
        assert c.map_tasks.num_complete == 1
        with pytest.raises(RPCError):
            call("Coordinator.nothing", None, path)
        with pytest.raises(RPCError):
            call(WORK_COMPLETE, "bad", path)
    assert not os.path.exists(path)


def test_serve_twice_rejected(sock_dir):
    with Coordinator([], 0) as c:
        c.serve(os.path.join(sock_dir, "a.sock"))
        with pytest.raises(RuntimeError):
            c.serve(os.path.join(sock_dir, "b.sock"))