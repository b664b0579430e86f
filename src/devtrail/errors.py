from __future__ import annotations


class ConfigError(ValueError):
    pass


class ConfigurationError(ConfigError):
    """Missing credentials or an invalid job config; fatal to one job, not the worker."""


class UnknownJobType(LookupError):
    def __init__(self, job_type: str, registered: list[str]) -> None:
        self.job_type = job_type
        self.registered = list(registered)
        super().__init__(
            f"Unknown job type: {job_type}. Registered types: {', '.join(self.registered)}"
        )


class DeprecatedJobType(ValueError):
    def __init__(self, job_type: str, replacements: list[str]) -> None:
        self.job_type = job_type
        self.replacements = list(replacements)
        super().__init__(
            f"Job type '{job_type}' is deprecated. "
            f"Please use {' or '.join(self.replacements)} instead."
        )


class InvalidTransition(ValueError):
    def __init__(self, job_id: str, current: str | None, requested: str) -> None:
        self.job_id = job_id
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move job {job_id} from {current} to {requested}")


class ExternalAPIError(RuntimeError):
    def __init__(self, service: str, message: str, status: int | None = None) -> None:
        self.service = service
        self.status = status
        prefix = f"{service} http_error {status}" if status else f"{service} error"
        super().__init__(f"{prefix}: {message}")


class ParseError(ValueError):
    pass


class UnrecoverableError(RuntimeError):
    pass
