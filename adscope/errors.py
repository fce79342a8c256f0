"""Error taxonomy shared by the orchestration core and the HTTP boundary."""

from __future__ import annotations


class AdScopeError(Exception):
    """Base error. ``code`` is the stable identifier used in API envelopes."""

    code = "ADSCOPE_ERROR"


class AdapterUnavailable(AdScopeError):
    """A backend adapter cannot serve this call (missing credentials, network fault)."""

    code = "ADAPTER_UNAVAILABLE"

    def __init__(self, adapter: str, reason: str):
        self.adapter = adapter
        self.reason = reason
        super().__init__(f"{adapter}: {reason}")


class InvalidIdentifier(AdScopeError):
    code = "INVALID_IDENTIFIER"

    def __init__(self, identifier: str, reason: str = "cannot derive a page name"):
        self.identifier = identifier
        self.reason = reason
        super().__init__(f"InvalidIdentifier: {identifier!r} ({reason})")


class NoDataAvailable(AdScopeError):
    code = "NO_DATA_AVAILABLE"

    def __init__(self, message: str = "No ad data available for analysis"):
        super().__init__(f"NoDataAvailable: {message}")


class ProviderUnavailable(AdScopeError):
    """Raised by a synthesis provider that is not usable (e.g. missing API key)."""

    code = "PROVIDER_UNAVAILABLE"

    def __init__(self, provider: str, reason: str):
        self.provider = provider
        self.reason = reason
        super().__init__(f"{provider}: {reason}")


class AllProvidersUnavailable(AdScopeError):
    code = "ALL_PROVIDERS_UNAVAILABLE"

    def __init__(self, failures: list[tuple[str, str]]):
        self.failures = failures
        detail = "; ".join(f"{name}: {reason}" for name, reason in failures) or "no providers configured"
        super().__init__(f"AllProvidersUnavailable: {detail}")


class OrchestrationFault(AdScopeError):
    """Wraps an unexpected exception caught at the top of an orchestrator."""

    code = "ORCHESTRATION_FAULT"

    def __init__(self, record_id: str, cause: BaseException):
        self.record_id = record_id
        self.cause = cause
        super().__init__(str(cause) or cause.__class__.__name__)


class RecordNotFound(AdScopeError):
    code = "NOT_FOUND"

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Record not found: {record_id}")


class NotReady(AdScopeError):
    code = "NOT_READY"

    def __init__(self, record_id: str, status: str):
        self.record_id = record_id
        self.status = status
        super().__init__(f"{record_id} is {status}")


class AlreadyFinished(AdScopeError):
    code = "ALREADY_FINISHED"

    def __init__(self, record_id: str, status: str):
        self.record_id = record_id
        self.status = status
        super().__init__(f"Cannot cancel {record_id}: already {status}")


class OperationCancelled(AdScopeError):
    code = "CANCELLED"
