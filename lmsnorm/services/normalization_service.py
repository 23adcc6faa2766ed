"""Normalize-then-validate orchestration over one or many raw exports."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence

from lmsnorm.core.errors import NormalizationError
from lmsnorm.core.logging import get_logger
from lmsnorm.schemas.normalized import NormalizedPayload
from lmsnorm.schemas.results import NormalizationOutcome
from lmsnorm.services.validator import validate

log = get_logger("normalization_service")

Adapter = Callable[..., NormalizedPayload]


@dataclass(frozen=True)
class NormalizationJob:
    """One raw export plus the adapter chosen for it by the caller."""

    adapter: Adapter
    raw: Any
    aux: Any = None
    label: Optional[str] = None

    @property
    def name(self) -> str:
        return self.label or getattr(self.adapter, "__name__", "job")


class NormalizationService:
    """Runs adapters and validates their output.

    Responsibilities:
    - Invoke the adapter selected on each job
    - Validate the canonical payload
    - Turn adapter failures into failed outcomes so batches keep going
    """

    def __init__(self, validate_output: bool = True):
        self.validate_output = validate_output

    def run(self, job: NormalizationJob) -> NormalizationOutcome:
        """Normalize and validate a single job."""
        job_log = log.bind(job=job.name)
        job_log.info(f"Starting normalization job={job.name}")
        try:
            payload = job.adapter(job.raw, job.aux)
        except NormalizationError as exc:
            job_log.error(f"Normalization failed for job={job.name}: {exc}")
            return NormalizationOutcome(label=job.name, success=False, errors=[str(exc)])

        lms = payload.source.lms
        if not self.validate_output:
            return NormalizationOutcome(label=job.name, lms=lms, success=True, payload=payload)

        result = validate(payload)
        if not result.valid:
            job_log.warning(f"Job={job.name} produced {len(result.errors or [])} schema violation(s)")
        else:
            job_log.info(f"Normalization finished job={job.name} lms={lms}")
        return NormalizationOutcome(
            label=job.name,
            lms=lms,
            success=result.valid,
            payload=payload,
            errors=result.errors or [],
        )

    async def run_all(self, jobs: Sequence[NormalizationJob]) -> List[NormalizationOutcome]:
        """Run jobs concurrently; outcomes come back in job order."""
        if not jobs:
            return []
        outcomes = await asyncio.gather(*(asyncio.to_thread(self.run, job) for job in jobs))
        failed = sum(1 for o in outcomes if not o.success)
        log.info(f"Normalized {len(outcomes)} job(s), failed={failed}")
        return list(outcomes)
