"""
Parent/child job flows.

A flow is one parent job gated by a set of children. The parent is stored
in the waiting-children state, which the runtime never claims, and is
released exactly once when the last child reaches a terminal state
(completed, failed or removed). Child failures do not block the parent.

The barrier is JobFlow.pending_children: every child settles once
(guarded by Job.flow_settled) and decrements it with a conditional
update; the flow is released by a conditional update on released_at.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from catalog.models import Job, JobFlow, JobStatus
from catalog.queue.jobs import build_job, dispatch

logger = logging.getLogger(__name__)


@dataclass
class FlowJob:
    """Description of one job inside a flow."""

    queue: str
    payload: Dict = field(default_factory=dict)
    job_id: Optional[str] = None
    delay_ms: int = 0
    name: Optional[str] = None


@dataclass
class FlowHandle:
    flow: JobFlow
    parent: Job
    children: List[Job]


def add_flow(parent: FlowJob, children: List[FlowJob]) -> FlowHandle:
    """
    Submit a parent job and its children atomically.

    Payloads are validated before anything is written. With no children
    the parent is released immediately.

    Returns:
        FlowHandle with the stored flow, parent and children
    """
    parent_job = build_job(
        parent.queue,
        parent.payload,
        job_id=parent.job_id,
        name=parent.name,
        status=JobStatus.WAITING_CHILDREN,
    )
    child_jobs = [
        build_job(child.queue, child.payload, job_id=child.job_id, delay_ms=child.delay_ms, name=child.name)
        for child in children
    ]

    with transaction.atomic():
        flow = JobFlow.objects.create(pending_children=len(child_jobs))

        parent_job.parent_of = flow
        parent_job.save(force_insert=True)

        for child in child_jobs:
            child.flow = flow
        Job.objects.bulk_create(child_jobs)

        for child in child_jobs:
            dispatch(child)

        if not child_jobs:
            release_flow(flow.pk)

    logger.info(
        f"Flow {flow.pk}: parent {parent_job.queue}:{parent_job.job_id} "
        f"waiting on {len(child_jobs)} children"
    )
    return FlowHandle(flow=flow, parent=parent_job, children=child_jobs)


def settle_child(job: Job) -> bool:
    """
    Count a terminal (or removed) child towards its flow.

    Safe to call for jobs outside any flow and more than once per job.

    Returns:
        True if this call released the flow's parent
    """
    if job.flow_id is None or job.flow_settled:
        return False

    with transaction.atomic():
        # A job that was already removed is settled by whoever removed it
        marked = Job.objects.filter(pk=job.pk, flow_settled=False).update(flow_settled=True)
        if not marked and Job.objects.filter(pk=job.pk).exists():
            return False

        decremented = JobFlow.objects.filter(
            pk=job.flow_id, pending_children__gt=0
        ).update(pending_children=F("pending_children") - 1)
        if not decremented:
            return False

        remaining = JobFlow.objects.filter(pk=job.flow_id).values_list(
            "pending_children", flat=True
        ).first()
        if remaining == 0:
            return release_flow(job.flow_id)

    return False


def release_flow(flow_id) -> bool:
    """
    Release a flow's parent job.

    Only the first caller wins; the parent moves from waiting-children to
    waiting and is dispatched.

    Returns:
        True if the parent was released by this call
    """
    now = timezone.now()
    released = JobFlow.objects.filter(
        pk=flow_id, released_at__isnull=True, pending_children=0
    ).update(released_at=now)
    if not released:
        return False

    parent = Job.objects.filter(parent_of_id=flow_id).first()
    if parent is None:
        logger.info(f"Flow {flow_id} released without a parent (removed)")
        return True

    updated = Job.objects.filter(
        pk=parent.pk, status=JobStatus.WAITING_CHILDREN
    ).update(status=JobStatus.WAITING, run_at=now)
    if updated:
        parent.status = JobStatus.WAITING
        parent.run_at = now
        dispatch(parent)
        logger.info(f"Flow {flow_id} released parent {parent.queue}:{parent.job_id}")

    return True


def flow_status(flow_id) -> Dict:
    """Summary of a flow for the admin API."""
    flow = JobFlow.objects.get(pk=flow_id)
    parent = Job.objects.filter(parent_of=flow).first()
    children = list(flow.children.values("job_id", "queue", "status"))
    return {
        "flow_id": str(flow.pk),
        "pending_children": flow.pending_children,
        "released_at": flow.released_at.isoformat() if flow.released_at else None,
        "parent": {"job_id": parent.job_id, "queue": parent.queue, "status": parent.status}
        if parent
        else None,
        "children": children,
    }
