"""
Job chains for background summary pre-generation.

A chain is an ordered list of stages; each stage links to the stage that runs
after it. Stage order is execution order: the slide right after the completed
one runs first, and each later slide waits for the one before it. This keeps
at most one provider call in flight per chain.

As a job flow the chain is nested the other way round: the job queue runs
children before parents, so every stage is the child of its successor and the
last stage is the flow's root.
"""

from dataclasses import dataclass
from typing import List, Optional
from uuid import UUID

from app.utils.job_queue import FlowJob

SLIDE_SUMMARY_QUEUE_NAME = "slideSummaryGenerator"


def create_job_id(lecture_id: UUID, slide_number: int) -> str:
    """Stable job identity; re-submitting the same slide collapses to one job."""
    return f"{lecture_id}-{slide_number}"


@dataclass(frozen=True)
class ChainStage:
    lecture_id: UUID
    slide_number: int
    successor: Optional[int] = None

    @property
    def job_id(self) -> str:
        return create_job_id(self.lecture_id, self.slide_number)


@dataclass(frozen=True)
class JobChain:
    lecture_id: UUID
    stages: tuple[ChainStage, ...]

    @property
    def head(self) -> ChainStage:
        """The first stage to run."""
        return self.stages[0]

    @property
    def slide_numbers(self) -> List[int]:
        return [stage.slide_number for stage in self.stages]

    @classmethod
    def from_slide_numbers(cls, lecture_id: UUID, slide_numbers: List[int]) -> "JobChain":
        if not slide_numbers:
            raise ValueError("A job chain needs at least one slide")
        if any(b <= a for a, b in zip(slide_numbers, slide_numbers[1:])):
            raise ValueError(f"Chain slides must be strictly ascending: {slide_numbers}")
        successors = [*slide_numbers[1:], None]
        return cls(
            lecture_id=lecture_id,
            stages=tuple(
                ChainStage(lecture_id, number, successor)
                for number, successor in zip(slide_numbers, successors)
            ),
        )

    def to_flow(self, queue_name: str = SLIDE_SUMMARY_QUEUE_NAME) -> FlowJob:
        """Nests the stages so the queue's children-first order matches stage order."""
        flow: Optional[FlowJob] = None
        for stage in self.stages:
            flow = FlowJob(
                name=queue_name,
                queue_name=queue_name,
                data={
                    "lecture_id": str(stage.lecture_id),
                    "slide_number": stage.slide_number,
                },
                job_id=stage.job_id,
                fail_parent_on_failure=True,
                children=[flow] if flow is not None else [],
            )
        return flow


def build_job_chain(
    lecture_id: UUID, completed_slide_number: int, num_slides: int, fanout: int
) -> Optional[JobChain]:
    """
    Chain for the slides after ``completed_slide_number``: from the next slide
    up to ``completed_slide_number + fanout - 1``, clamped to ``num_slides``.
    Returns None when nothing is left downstream.
    """
    if completed_slide_number >= num_slides or fanout < 2:
        return None
    last = min(completed_slide_number + fanout - 1, num_slides)
    return JobChain.from_slide_numbers(
        lecture_id, list(range(completed_slide_number + 1, last + 1))
    )
