"""Fatal pipeline conditions.

Every error here maps to exit code 1 in the CLI. Failures of the delegated
recipe scripts are not wrapped; they surface as ``subprocess.CalledProcessError``.
"""


class PipelineError(RuntimeError):
    pass


class MissingDependencyError(PipelineError):
    """A Python package required by a later stage is not importable."""


class MissingPreconditionError(PipelineError):
    """An input file or directory that an earlier step should have produced is absent."""


class UnsupportedConfigurationError(PipelineError):
    """The requested configuration cannot be served; the operator must change it."""


class ManifestError(PipelineError):
    """A cut manifest is malformed or inconsistent."""
