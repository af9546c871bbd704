# Fatal error types for mcpdoctor
# ABOUTME: Only these abort a run; everything else is reported as data


class DoctorError(Exception):
    """Base class for errors that stop a run before any report is produced."""

    error_type = "error"
    exit_code = 3

    def to_dict(self) -> dict[str, dict[str, str]]:
        """Machine-readable error object printed by the CLI."""
        return {"error": {"type": self.error_type, "message": str(self)}}


class UsageError(DoctorError):
    """Invalid command-line invocation."""

    error_type = "usage_error"
    exit_code = 2


class PreflightError(DoctorError):
    """A required precondition (interpreter, tool config) is not met."""

    error_type = "preflight_error"
    exit_code = 3
