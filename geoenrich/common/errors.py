"""Domain errors and failure typing."""


class PipelineError(Exception):
    """Base class for enrichment failures."""

    error_code = "PIPELINE_ERROR"


class ConfigError(PipelineError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class SetupError(PipelineError):
    """Raised before any row is processed; aborts the run."""

    error_code = "SETUP_ERROR"


class CheckpointError(PipelineError):
    """Raised when progress could not be persisted. Never aborts the run."""

    error_code = "CHECKPOINT_ERROR"
