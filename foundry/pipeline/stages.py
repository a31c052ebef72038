"""Stage sequence for source processing.

Stage order
-----------
1. parsing        (progress 0)   decode the source file into records
2. detecting_pii  (progress 25)  scan values for PII entity types
3. deidentifying  (progress 50)  apply the per-field de-identification rules
4. mapping        (progress 75)  project records onto the target schema
   complete       (progress 100) dataset emitted, job completed

The sequence is data: the executor walks ``PIPELINE_STAGES`` in order and
never branches, skips or revisits a stage.  Progress values are fixed
checkpoints written when a stage starts.
"""
from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from foundry.core.constants import (
    STAGE_DEIDENTIFYING,
    STAGE_DETECTING_PII,
    STAGE_MAPPING,
    STAGE_PARSING,
)
from foundry.pipeline.context import StageContext
from foundry.tasks.deidentification import run_deidentification
from foundry.tasks.detection import run_detection
from foundry.tasks.mapping import run_mapping
from foundry.tasks.parsing import run_parsing

COMPLETION_PROGRESS = 100

StageHandler = Callable[[StageContext], None]


@dataclass(frozen=True)
class StageDescriptor:
    name: str
    progress: int
    handler: StageHandler


PIPELINE_STAGES: tuple[StageDescriptor, ...] = (
    StageDescriptor(STAGE_PARSING, 0, run_parsing),
    StageDescriptor(STAGE_DETECTING_PII, 25, run_detection),
    StageDescriptor(STAGE_DEIDENTIFYING, 50, run_deidentification),
    StageDescriptor(STAGE_MAPPING, 75, run_mapping),
)


def validate_stages(stages: Sequence[StageDescriptor]) -> None:
    """Reject sequences whose checkpoints would move progress backwards."""
    if not stages:
        raise ValueError("A pipeline needs at least one stage")
    previous = -1
    for stage in stages:
        if not 0 <= stage.progress < COMPLETION_PROGRESS:
            raise ValueError(f"Stage {stage.name!r} progress must be in [0, {COMPLETION_PROGRESS})")
        if stage.progress < previous:
            raise ValueError(f"Stage {stage.name!r} progress goes backwards")
        previous = stage.progress
    names = [s.name for s in stages]
    if len(set(names)) != len(names):
        raise ValueError("Stage names must be unique")
