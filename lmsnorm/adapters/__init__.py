# Adapters package
from lmsnorm.adapters.canvas import normalize_canvas
from lmsnorm.adapters.edx import normalize_edx
from lmsnorm.adapters.google_classroom import normalize_google_classroom
from lmsnorm.adapters.moodle import normalize_moodle

__all__ = [
    "normalize_canvas",
    "normalize_edx",
    "normalize_google_classroom",
    "normalize_moodle",
]
