"""Normalize entrypoint - Standalone script for normalizing one LMS export.

Usage:
    python -m lmsnorm.normalize_entrypoint canvas course.json
    python -m lmsnorm.normalize_entrypoint edx course.json submissions.json
    python -m lmsnorm.normalize_entrypoint moodle course.json
    python -m lmsnorm.normalize_entrypoint google-classroom course.json

The canonical payload is printed to stdout; logs go to stderr.
"""

import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from lmsnorm.adapters import normalize_canvas, normalize_edx, normalize_google_classroom, normalize_moodle
from lmsnorm.core.logging import configure_logging, get_logger
from lmsnorm.services.normalization_service import Adapter, NormalizationJob, NormalizationService

logger = get_logger("normalize_entrypoint")

ADAPTERS: Dict[str, Adapter] = {
    "canvas": normalize_canvas,
    "edx": normalize_edx,
    "moodle": normalize_moodle,
    "google-classroom": normalize_google_classroom,
}


def _read_json(path: str) -> Any:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point; returns the process exit code."""
    configure_logging()
    args = sys.argv[1:] if argv is None else argv

    if len(args) not in (2, 3):
        logger.error("Usage: python -m lmsnorm.normalize_entrypoint <lms> <raw.json> [aux.json]")
        return 2

    lms, raw_path = args[0], args[1]
    adapter = ADAPTERS.get(lms)
    if adapter is None:
        logger.error(f"Invalid lms: {lms}. Must be one of: {', '.join(ADAPTERS)}")
        return 2

    try:
        raw = _read_json(raw_path)
        aux = _read_json(args[2]) if len(args) == 3 else None
    except (OSError, json.JSONDecodeError) as exc:
        logger.error(f"Could not read input: {exc}")
        return 2

    outcome = NormalizationService().run(NormalizationJob(adapter=adapter, raw=raw, aux=aux, label=raw_path))
    if outcome.payload is not None:
        print(json.dumps(outcome.payload.to_dict(), indent=2, ensure_ascii=False))

    if not outcome.success:
        for error in outcome.errors:
            logger.error(error)
        return 1

    logger.info(f"Normalization completed: {outcome.label}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
