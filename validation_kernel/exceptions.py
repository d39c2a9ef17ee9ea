"""
Exceptions raised by the validation kernel.

Callers (expense, purchase order, production order and stock transfer
services) branch on the exception *type*; the ``code`` class attribute is
the stable string exposed over APIs, and the constructor arguments are kept
as attributes so handlers never parse messages:

    try:
        gateway.process_validation(request_id, "emp-42", "approved")
    except AlreadyProcessedError as e:
        notify_user(f"Request {e.request_id} is already {e.status}")
    except ConcurrentModificationError:
        refresh_and_show_latest()

Tree and codes:

    ValidationKernelError                 VALIDATION_KERNEL_ERROR
      NotFoundError                       NOT_FOUND
        ThresholdNotFoundError            THRESHOLD_NOT_FOUND     unknown threshold id
        RequestNotFoundError              REQUEST_NOT_FOUND       unknown request id
      ThresholdError                      THRESHOLD_ERROR
        InvalidThresholdsError            INVALID_THRESHOLDS      0 <= auto < l1 < l2 < l3 broken
        ConfigConflictError               CONFIG_CONFLICT         key already configured
      ValidationRequestError              VALIDATION_REQUEST_ERROR
        InvalidRequestError               INVALID_REQUEST         e.g. negative amount
        AlreadyProcessedError             ALREADY_PROCESSED       request is terminal
          LevelMismatchError              LEVEL_MISMATCH          level already passed
          DuplicateDecisionError          DUPLICATE_DECISION      validator decided before
      ConcurrencyError                    CONCURRENCY_ERROR
        ConcurrentModificationError       CONCURRENT_MODIFICATION lost a race on the row
      AuditError                          AUDIT_ERROR
        AuditChainBrokenError             AUDIT_CHAIN_BROKEN      global chain mismatch
        TamperDetectedError               TAMPER_DETECTED         request hashes mismatch
      ImmutabilityError                   IMMUTABILITY_ERROR
        ImmutabilityViolationError        IMMUTABILITY_VIOLATION  append-only row touched

The kernel retries nothing.  ValidationGateway re-reads and retries
ConcurrentModificationError only.
"""


class ValidationKernelError(Exception):
    """Root of the hierarchy; every subclass overrides ``code``."""

    code: str = "VALIDATION_KERNEL_ERROR"


# Lookup exceptions


class NotFoundError(ValidationKernelError):
    """Base exception for unknown identifiers."""

    code: str = "NOT_FOUND"


class ThresholdNotFoundError(NotFoundError):
    """Threshold configuration with given ID was not found."""

    code: str = "THRESHOLD_NOT_FOUND"

    def __init__(self, threshold_id: str):
        self.threshold_id = threshold_id
        super().__init__(f"Validation threshold not found: {threshold_id}")


class RequestNotFoundError(NotFoundError):
    """Validation request with given ID was not found."""

    code: str = "REQUEST_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Validation request not found: {request_id}")


# Threshold configuration exceptions


class ThresholdError(ValidationKernelError):
    """Base exception for threshold configuration errors."""

    code: str = "THRESHOLD_ERROR"


class InvalidThresholdsError(ThresholdError):
    """Ladder violates 0 <= auto_approve_below < level1 < level2 < level3."""

    code: str = "INVALID_THRESHOLDS"

    def __init__(self, violations: list[str] | tuple[str, ...]):
        self.violations = tuple(violations)
        super().__init__(
            "Invalid threshold ladder: " + "; ".join(self.violations)
        )


class ConfigConflictError(ThresholdError):
    """A configuration already exists for this exact key."""

    code: str = "CONFIG_CONFLICT"

    def __init__(self, workspace_id: str, entity_type: str, category: str | None):
        self.workspace_id = workspace_id
        self.entity_type = entity_type
        self.category = category
        suffix = f" ({category})" if category else ""
        super().__init__(
            f"A threshold configuration already exists for "
            f"{entity_type}{suffix} in workspace {workspace_id}"
        )


# Validation request exceptions


class ValidationRequestError(ValidationKernelError):
    """Base exception for validation request errors."""

    code: str = "VALIDATION_REQUEST_ERROR"


class InvalidRequestError(ValidationRequestError):
    """Validation request input is malformed."""

    code: str = "INVALID_REQUEST"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid validation request field '{field}': {reason}")


class AlreadyProcessedError(ValidationRequestError):
    """Request no longer accepts the attempted decision."""

    code: str = "ALREADY_PROCESSED"

    def __init__(self, request_id: str, status: str, message: str | None = None):
        self.request_id = request_id
        self.status = status
        super().__init__(
            message or f"Validation request {request_id} was already processed (status: {status})"
        )


class LevelMismatchError(AlreadyProcessedError):
    """Decision targets a level the request has already moved past."""

    code: str = "LEVEL_MISMATCH"

    def __init__(
        self,
        request_id: str,
        status: str,
        expected_level: str,
        current_level: str,
    ):
        self.expected_level = expected_level
        self.current_level = current_level
        super().__init__(
            request_id,
            status,
            f"Validation request {request_id} is awaiting {current_level}, "
            f"not {expected_level}",
        )


class DuplicateDecisionError(AlreadyProcessedError):
    """Validator already recorded a decision on this request."""

    code: str = "DUPLICATE_DECISION"

    def __init__(self, request_id: str, status: str, validated_by: str):
        self.validated_by = validated_by
        super().__init__(
            request_id,
            status,
            f"Validator {validated_by} already decided on request {request_id}",
        )


# Races


class ConcurrencyError(ValidationKernelError):
    code: str = "CONCURRENCY_ERROR"


class ConcurrentModificationError(ConcurrencyError):
    """The row's version moved between our read and our write."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, entity_type: str, entity_id: str, expected_version: int | None = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        detail = "" if expected_version is None else f" (expected version {expected_version})"
        super().__init__(f"{entity_type} {entity_id} was changed by another writer{detail}")


# Tamper evidence


class AuditError(ValidationKernelError):
    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """A stored audit event does not hash or link as recorded."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, audit_event_id: str, expected_hash: str, actual_hash: str):
        self.audit_event_id = audit_event_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"audit event {audit_event_id} breaks the chain "
            f"(computed {expected_hash}, stored {actual_hash})"
        )


class TamperDetectedError(AuditError):
    """Stored request or decision trail no longer matches its hashes."""

    code: str = "TAMPER_DETECTED"

    def __init__(self, request_id: str, reason: str):
        self.request_id = request_id
        self.reason = reason
        super().__init__(f"Tamper detected on validation request {request_id}: {reason}")


# Append-only records


class ImmutabilityError(ValidationKernelError):
    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """UPDATE or DELETE attempted on an audit event or decision entry."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"{entity_type} {entity_id} is append-only: {reason}")
