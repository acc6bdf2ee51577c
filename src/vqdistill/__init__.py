"""vqdistill package
"""
__version__ = "0.1.0"

from .config import CodebookSource, PipelineConfig, TeacherModel
from .errors import (
    ManifestError,
    MissingDependencyError,
    MissingPreconditionError,
    PipelineError,
    UnsupportedConfigurationError,
)
from .stages import Stage, default_stages, run_pipeline, should_run

__all__ = [
    "__version__",
    "CodebookSource",
    "PipelineConfig",
    "TeacherModel",
    "PipelineError",
    "MissingDependencyError",
    "MissingPreconditionError",
    "UnsupportedConfigurationError",
    "ManifestError",
    "Stage",
    "default_stages",
    "run_pipeline",
    "should_run",
]
