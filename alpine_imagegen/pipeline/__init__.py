"""Image build pipeline.

This module provides:
- Stage definitions in execution order
- The per-run build context
- run_pipeline(), the top-level build entry point
"""

from alpine_imagegen.pipeline.context import BuildContext, format_build_date
from alpine_imagegen.pipeline.driver import (
    PipelineResult,
    StageFailedError,
    run_pipeline,
)
from alpine_imagegen.pipeline.stages import Stage, default_stages

__all__ = [
    "BuildContext",
    "PipelineResult",
    "Stage",
    "StageFailedError",
    "default_stages",
    "format_build_date",
    "run_pipeline",
]
