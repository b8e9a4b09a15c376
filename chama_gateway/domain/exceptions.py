"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(DomainException):
    """Caller input is invalid and can be corrected by the caller"""

    pass


class InvalidPhoneFormat(DomainException):
    """Phone number matches neither the local nor the international pattern"""

    pass


class GatewayError(DomainException):
    """M-Pesa gateway failed or refused a request"""

    pass


class GatewayAuthError(GatewayError):
    """Credential exchange was rejected or returned no token"""

    pass


class GatewayRequestError(GatewayError):
    """Gateway rejected the push request; message is the gateway's description"""

    pass


class GatewayUnavailable(GatewayError):
    """Gateway could not be reached or timed out"""

    pass


class MalformedCallback(DomainException):
    """Callback payload is missing required structure or fields"""

    pass


class MemberResolutionError(DomainException):
    """Paying member could not be derived from the callback"""

    pass


class StorageError(DomainException):
    """Record store failed; callers may retry"""

    pass


class InvalidLoanState(DomainException):
    """Operation is not allowed from the loan's current status"""

    pass


class RecordNotFound(DomainException):
    """Referenced record does not exist"""

    pass


class LoanNotFound(RecordNotFound):
    pass


class MemberNotFound(RecordNotFound):
    pass


class UnmatchedPaymentNotFound(RecordNotFound):
    pass
