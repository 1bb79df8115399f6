"""Tests for the background sync queue."""

import asyncio

import pytest

from smart_todo.sync import SyncQueue
from smart_todo.tasks.exceptions import InvalidTaskListIdError, TasksApiError


async def wait_idle(queue: SyncQueue, timeout: float = 2.0) -> None:
    """Wait until the queue is drained and no pass is running."""

    async def _wait():
        while queue.queue or queue.is_syncing:
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_wait(), timeout)


@pytest.fixture
def queue(backend):
    return SyncQueue(backend, retry_delay=0.01)


class TestAddToSyncQueue:
    """Validation and bookkeeping when queueing."""

    @pytest.mark.parametrize(
        "data",
        [
            None,
            {},
            {"title": "No id"},
            {"id": "undefined", "title": "x"},
            {"id": "null", "title": "x"},
            {"id": 123, "title": "x"},
            {"id": "list001"},
        ],
    )
    def test_rejects_invalid_list_updates(self, queue, data):
        """Should drop list updates without a usable id or changes."""
        queue.add_to_sync_queue("taskList", "update", data)
        assert queue.get_sync_status()["queue_length"] == 0

    def test_rejects_unknown_operation(self, queue):
        queue.add_to_sync_queue("calendar", "create", {"title": "x"})
        assert queue.get_sync_status()["queue_length"] == 0

    def test_records_pending_changes(self, queue):
        """Should count queued changes per type and action."""
        queue.add_to_sync_queue("task", "create", {"list_id": "list001", "title": "a"})
        queue.add_to_sync_queue("task", "create", {"list_id": "list001", "title": "b"})
        queue.add_to_sync_queue("taskList", "update", {"id": "list001", "color": "red"})

        status = queue.get_sync_status()

        assert status["queue_length"] == 3
        assert status["pending_changes"]["tasks"]["created"] == 2
        assert status["pending_changes"]["task_lists"]["updated"] == 1
        assert status["is_syncing"] is False
        assert status["last_sync_time"] is None

    def test_deferred_without_running_loop(self, queue, backend):
        """Should keep entries until start_sync() is awaited."""
        backend.add_list("list001", "Work")
        queue.add_to_sync_queue("task", "create", {"list_id": "list001", "title": "a"})

        asyncio.run(queue.start_sync())

        assert len(backend.calls_to("create_task")) == 1
        assert queue.get_sync_status()["queue_length"] == 0


class TestStartSync:
    """Draining the queue."""

    @pytest.mark.asyncio
    async def test_counters_reach_zero(self, queue, backend):
        """Should empty the queue and every counter after N creates."""
        backend.add_list("list001", "Work")
        for n in range(5):
            queue.add_to_sync_queue("task", "create", {"list_id": "list001", "title": f"t{n}"})

        await wait_idle(queue)

        status = queue.get_sync_status()
        assert status["queue_length"] == 0
        assert all(count == 0 for count in status["pending_changes"]["tasks"].values())
        assert all(count == 0 for count in status["pending_changes"]["task_lists"].values())
        assert status["last_sync_time"] is not None
        assert len(backend.calls_to("create_task")) == 5

    @pytest.mark.asyncio
    async def test_lists_before_tasks(self, queue, backend):
        """Should replay list changes before task changes."""
        backend.add_list("list001", "Work")
        queue.add_to_sync_queue("task", "create", {"list_id": "list001", "title": "a"})
        queue.add_to_sync_queue("taskList", "create", {"title": "Home"})

        await wait_idle(queue)

        names = [call[0] for call in backend.calls]
        assert names.index("create_task_list") < names.index("create_task")

    @pytest.mark.asyncio
    async def test_temp_list_mapping(self, queue, backend):
        """Should publish the real id and re-target tasks on the temp list."""
        mappings = []
        queue.on_list_id_mapped(lambda temp, real: mappings.append((temp, real)))

        queue.add_to_sync_queue("taskList", "create", {"id": "temp-list-1", "title": "Home"})
        queue.add_to_sync_queue("task", "create", {"list_id": "temp-list-1", "title": "Dishes"})

        await wait_idle(queue)

        real_id = mappings[0][1]
        assert mappings == [("temp-list-1", real_id)]
        assert backend.calls_to("create_task")[0][1] == real_id
        assert queue.last_errors == []

    @pytest.mark.asyncio
    async def test_failures_are_swallowed_and_recorded(self, queue, backend):
        """Should log failures, keep going and record them."""
        backend.add_list("list001", "Work")
        backend.fail_on.add("create_task")
        queue.add_to_sync_queue("task", "create", {"list_id": "list001", "title": "a"})
        queue.add_to_sync_queue("taskList", "create", {"title": "Home"})

        await wait_idle(queue)

        assert queue.get_sync_status()["queue_length"] == 0
        assert len(backend.lists) == 2
        assert len(queue.last_errors) == 1
        failure = queue.last_errors[0]
        assert (failure.type, failure.action) == ("task", "create")
        assert isinstance(failure.error, TasksApiError)

    @pytest.mark.asyncio
    async def test_entries_added_mid_flush_are_retried(self, queue, backend):
        """Should keep entries that arrive during a pass and drain them later."""

        def add_task(temp_id, real_id):
            queue.add_to_sync_queue("task", "create", {"list_id": temp_id, "title": "Late"})

        queue.on_list_id_mapped(add_task)
        queue.add_to_sync_queue("taskList", "create", {"id": "temp-list-1", "title": "Home"})

        await wait_idle(queue)

        created = backend.calls_to("create_task")
        assert len(created) == 1
        assert created[0][1] == queue.list_id_map["temp-list-1"]

    @pytest.mark.asyncio
    async def test_temp_list_update_moves_to_create(self, queue, backend):
        """Should turn an update of a never-created temp list into a create."""
        queue.add_to_sync_queue("taskList", "update", {"id": "temp-list-9", "title": "Renamed"})

        await wait_idle(queue)

        assert backend.calls_to("update_task_list") == []
        assert [call[1] for call in backend.calls_to("create_task_list")] == ["Renamed"]
        assert isinstance(queue.last_errors[0].error, InvalidTaskListIdError)
        assert "temp-list-9" in queue.list_id_map

    @pytest.mark.asyncio
    async def test_update_delete_and_reorder(self, queue, backend):
        """Should replay updates, deletes and reorders."""
        backend.add_list("list001", "Work")
        backend.add_task("list001", "task-a", "A")
        backend.add_task("list001", "task-b", "B")
        backend.add_task("list001", "task-c", "C")

        queue.add_to_sync_queue("taskList", "update", {"id": "list001", "title": "Office"})
        queue.add_to_sync_queue(
            "task", "update", {"id": "task-a", "list_id": "list001", "starred": True}
        )
        queue.add_to_sync_queue("task", "delete", {"id": "task-c", "list_id": "list001"})
        queue.add_to_sync_queue(
            "task", "reorder", {"id": "task-a", "list_id": "list001", "previous": "task-b"}
        )

        await wait_idle(queue)

        assert backend.lists["list001"].title == "Office"
        assert backend.tasks["task-a"].starred is True
        assert "task-c" not in backend.tasks
        assert backend.calls_to("move_task") == [
            ("move_task", "list001", "task-a", "task-b", None)
        ]
        assert queue.last_errors == []

    @pytest.mark.asyncio
    async def test_delete_list_by_id(self, queue, backend):
        backend.add_list("list001", "Work")
        queue.add_to_sync_queue("taskList", "delete", "list001")

        await wait_idle(queue)

        assert backend.lists == {}


class TestFetching:
    """Initial and periodic fetches."""

    @pytest.fixture
    def populated(self, backend):
        backend.add_list("list001", "Work")
        backend.add_list("list002", "Home")
        backend.add_task("list001", "task001", "Report")
        backend.add_task("list002", "task002", "Dishes")
        return backend

    @pytest.mark.asyncio
    async def test_initial_sync(self, queue, populated):
        """Should fetch every list and stamp tasks with their list id."""
        result = await queue.initial_sync()

        assert [task_list.id for task_list in result.task_lists] == ["list001", "list002"]
        assert {(task.id, task.list_id) for task in result.tasks} == {
            ("task001", "list001"),
            ("task002", "list002"),
        }
        assert queue.last_sync_time is not None

    @pytest.mark.asyncio
    async def test_fetch_latest_notifies(self, queue, populated):
        """Should hand fresh data to on_data_updated listeners."""
        received = []
        queue.on_data_updated(lambda lists, tasks: received.append((lists, tasks)))

        await queue.fetch_latest_data()

        assert len(received) == 1
        assert len(received[0][1]) == 2

    @pytest.mark.asyncio
    async def test_periodic_fetch(self, queue, populated):
        """Should fetch on every interval until stopped."""
        queue.start_periodic_data_fetch(interval=0.01)
        await asyncio.sleep(0.1)
        queue.stop_periodic_data_fetch()

        fetches = len(populated.calls_to("list_task_lists"))
        assert fetches >= 1

        await asyncio.sleep(0.05)
        assert len(populated.calls_to("list_task_lists")) == fetches

    @pytest.mark.asyncio
    async def test_periodic_fetch_survives_errors(self, queue, populated):
        """Should log a failed fetch and try again next interval."""
        populated.fail_on.add("list_task_lists")
        queue.start_periodic_data_fetch(interval=0.01)
        await asyncio.sleep(0.1)
        queue.stop_periodic_data_fetch()

        assert len(populated.calls_to("list_task_lists")) >= 2
