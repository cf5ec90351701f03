"""
Tests for parent/child job flows.
"""

import uuid
from unittest.mock import Mock

import pytest

from catalog.exceptions import NotFoundError, SourceFetchError


def _flow(children=2):
    from catalog.queue.flows import FlowJob, add_flow

    return add_flow(
        FlowJob(queue="indexer", payload={"serie_id": str(uuid.uuid4()), "type": "UPDATE"}),
        [
            FlowJob(queue="cover-update", payload={"type": "SOURCE", "serie_source_id": str(uuid.uuid4())})
            for _ in range(children)
        ],
    )


@pytest.mark.django_db
class TestFlows:
    """The parent runs only after every child settled."""

    def test_parent_waits_for_children(self):
        from catalog.models import JobStatus

        handle = _flow()

        handle.parent.refresh_from_db()
        assert handle.parent.status == JobStatus.WAITING_CHILDREN
        assert handle.flow.pending_children == 2
        assert all(child.flow_id == handle.flow.pk for child in handle.children)

    def test_parent_not_claimable_while_gated(self):
        from catalog.queue import jobs

        handle = _flow()
        handler = Mock()

        outcome = jobs.run_job(handle.parent.job_id, handlers={"indexer": handler})

        assert outcome["status"] == "skipped"
        handler.assert_not_called()

    def test_released_after_slowest_child(self):
        from catalog.models import Job, JobFlow, JobStatus
        from catalog.queue import jobs

        handle = _flow()
        handlers = {"cover-update": Mock(return_value={}), "indexer": Mock(return_value={})}
        fast, slow = handle.children

        jobs.run_job(fast.job_id, handlers=handlers)
        assert Job.objects.get(pk=handle.parent.job_id).status == JobStatus.WAITING_CHILDREN

        jobs.run_job(slow.job_id, handlers=handlers)
        assert Job.objects.get(pk=handle.parent.job_id).status == JobStatus.WAITING
        assert JobFlow.objects.get(pk=handle.flow.pk).released_at is not None

        outcome = jobs.run_job(handle.parent.job_id, handlers=handlers)
        assert outcome["status"] == "completed"

    def test_failed_child_still_releases_parent(self):
        from catalog.models import Job, JobStatus
        from catalog.queue import jobs

        handle = _flow(children=1)
        handlers = {"cover-update": Mock(side_effect=NotFoundError("gone"))}

        jobs.run_job(handle.children[0].job_id, handlers=handlers)

        assert Job.objects.get(pk=handle.parent.job_id).status == JobStatus.WAITING

    def test_retrying_child_keeps_parent_gated(self):
        from catalog.models import Job, JobStatus
        from catalog.queue import jobs

        handle = _flow(children=1)
        handlers = {"cover-update": Mock(side_effect=SourceFetchError("flaky"))}

        jobs.run_job(handle.children[0].job_id, handlers=handlers)

        assert Job.objects.get(pk=handle.children[0].job_id).status == JobStatus.DELAYED
        assert Job.objects.get(pk=handle.parent.job_id).status == JobStatus.WAITING_CHILDREN

    def test_removed_child_counts_as_settled(self):
        from catalog.models import Job, JobStatus
        from catalog.queue import jobs

        handle = _flow(children=1)

        assert jobs.remove_job("cover-update", handle.children[0].job_id) is True
        assert Job.objects.get(pk=handle.parent.job_id).status == JobStatus.WAITING

    def test_settle_is_idempotent(self):
        from catalog.models import Job, JobFlow
        from catalog.queue import jobs
        from catalog.queue.flows import settle_child

        handle = _flow()
        handlers = {"cover-update": Mock(return_value={})}
        jobs.run_job(handle.children[0].job_id, handlers=handlers)

        settled = Job.objects.get(pk=handle.children[0].job_id)
        assert settle_child(settled) is False
        assert JobFlow.objects.get(pk=handle.flow.pk).pending_children == 1

    def test_no_children_releases_immediately(self):
        from catalog.models import Job, JobStatus

        handle = _flow(children=0)

        assert Job.objects.get(pk=handle.parent.job_id).status == JobStatus.WAITING

    def test_flow_status(self):
        from catalog.queue.flows import flow_status

        handle = _flow()
        status = flow_status(handle.flow.pk)

        assert status["pending_children"] == 2
        assert status["parent"]["status"] == "waiting-children"
        assert len(status["children"]) == 2
