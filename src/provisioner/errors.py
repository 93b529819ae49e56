"""Provisioning error hierarchy.

Every failure a step can report carries a stable ``code`` so callers and
metrics can classify it without string matching. Provider detail is kept
as opaque text; no transport objects (httpx responses, sockets) leak into
these errors.

Taxonomy:
  - ``AllocationError``: provider rejected a resource creation request.
  - ``BindingError``: provider rejected associating a resource with a target.
  - ``TransientConnectError``: a connect attempt failed in a retryable way.
  - ``RetryExhaustedError``: every retry attempt failed.
  - ``CleanupError``: a teardown call failed (advisory only).
  - ``RunCancelledError``: the run was externally cancelled.
  - ``SessionSetupError``: local session config (the SSH key) is unusable.
  - ``StepExecutionError``: a step raised instead of returning a result.
"""

from __future__ import annotations


class ProvisioningError(Exception):
    """Base class for all errors surfaced in a provisioning run."""

    code = 'provisioning_error'

    def __init__(self, message: str, *, cause: BaseException | None = None) -> None:
        self.message = message
        self.cause = cause
        super().__init__(message)


class AllocationError(ProvisioningError):
    """Provider rejected a resource allocation (quota, permission, params)."""

    code = 'allocation_failed'


class BindingError(ProvisioningError):
    """Provider rejected binding an allocated resource to its target."""

    code = 'binding_failed'


class TransientConnectError(ProvisioningError):
    """A connect attempt failed in a way worth retrying."""

    code = 'transient_connect'


class RetryExhaustedError(TransientConnectError):
    """All attempts of a retry policy failed.

    ``cause`` is the error of the last attempt, which is the most
    informative one.
    """

    code = 'retry_exhausted'

    def __init__(
        self,
        message: str,
        *,
        attempts: int,
        cause: BaseException | None = None,
    ) -> None:
        self.attempts = attempts
        super().__init__(message, cause=cause)


class CleanupError(ProvisioningError):
    """A compensating teardown call failed. Never changes the run outcome."""

    code = 'cleanup_failed'

    def __init__(
        self,
        message: str,
        *,
        step: str,
        cause: BaseException | None = None,
    ) -> None:
        self.step = step
        super().__init__(message, cause=cause)


class RunCancelledError(ProvisioningError):
    """The run was cancelled by its operator, not failed by a step."""

    code = 'cancelled'


class SessionSetupError(ProvisioningError):
    """Local session configuration is unusable (e.g. an unparseable key).

    Retrying cannot fix it, so the connect step halts before dialing.
    """

    code = 'session_setup_failed'


class StepExecutionError(ProvisioningError):
    """A step raised an unexpected exception from ``run``."""

    code = 'step_crashed'

    def __init__(
        self,
        message: str,
        *,
        step: str,
        cause: BaseException | None = None,
    ) -> None:
        self.step = step
        super().__init__(message, cause=cause)


# ── Provider errors ─────────────────────────────────────────────────


class ProviderError(ProvisioningError):
    """Raised by resource provider implementations."""

    code = 'provider_error'

    def __init__(
        self,
        message: str = '',
        *,
        status_code: int = 0,
        response_body: str = '',
    ) -> None:
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(message or f'provider error {status_code}')


class ProviderNotFoundError(ProviderError):
    """Provider reports the resource does not exist (404)."""

    def __init__(self, message: str = 'resource not found', **kwargs) -> None:
        kwargs.setdefault('status_code', 404)
        super().__init__(message, **kwargs)


class ProviderTimeoutError(ProviderError):
    """Request to the provider timed out."""

    def __init__(self, message: str = 'request timed out') -> None:
        super().__init__(message)
