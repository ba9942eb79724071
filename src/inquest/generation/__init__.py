"""Asynchronous case generation."""

from inquest.generation.bootstrap import resume_generation
from inquest.generation.controller import (
    GENERATION_FAILED_MESSAGE,
    GenerationBackend,
    GenerationJobController,
)

__all__ = [
    "GENERATION_FAILED_MESSAGE",
    "GenerationBackend",
    "GenerationJobController",
    "resume_generation",
]
