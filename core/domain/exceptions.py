"""
Domain exceptions.

Domain exceptions represent business rule violations
and domain-specific error conditions. Verification outcomes are
not exceptions: "not entitled" is reported through a Verdict.
"""


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    def __init__(self, message: str, code: str = None):
        """
        Initialize domain exception.

        Args:
            message: Human-readable error message
            code: Machine-readable error code
        """
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__


class EntitlementException(DomainException):
    """Base exception for entitlement-related errors."""

    pass


class EntitlementNotFoundError(EntitlementException):
    """Raised when an entitlement record is not found."""

    def __init__(self, message: str = "Entitlement not found"):
        super().__init__(message, code="ENTITLEMENT_NOT_FOUND")


class DuplicateActivationCodeError(EntitlementException):
    """Raised when a generated activation code hash already exists."""

    def __init__(self, message: str = "Activation code already exists"):
        super().__init__(message, code="DUPLICATE_ACTIVATION_CODE")


class ImmutableFieldError(EntitlementException):
    """Raised when a patch tries to change a field that may not be patched."""

    def __init__(self, message: str = "Field cannot be modified"):
        super().__init__(message, code="IMMUTABLE_FIELD")


class InvalidDeviceIdError(EntitlementException):
    """Raised when a device identifier is malformed."""

    def __init__(self, message: str = "Invalid device identifier"):
        super().__init__(message, code="INVALID_DEVICE_ID")


class InvalidEmailError(DomainException):
    """Raised when an email address is malformed."""

    def __init__(self, message: str = "Invalid email address"):
        super().__init__(message, code="INVALID_EMAIL")


class PlanNotFoundError(DomainException):
    """Raised when a plan identifier is unknown."""

    def __init__(self, message: str = "Plan not found"):
        super().__init__(message, code="PLAN_NOT_FOUND")


class OwnerNotFoundError(DomainException):
    """Raised when an owner account is not found."""

    def __init__(self, message: str = "Owner not found"):
        super().__init__(message, code="OWNER_NOT_FOUND")


class LifecycleException(DomainException):
    """Base exception for subscription lifecycle errors."""

    pass


class InvalidTransitionError(LifecycleException):
    """Raised when a lifecycle transition is not allowed in the current state."""

    def __init__(self, message: str = "Invalid lifecycle transition"):
        super().__init__(message, code="INVALID_TRANSITION")


class SubscriptionExpiredError(LifecycleException):
    """Raised when a transition needs a plan or subscription that has lapsed."""

    def __init__(self, message: str = "Subscription has expired"):
        super().__init__(message, code="SUBSCRIPTION_EXPIRED")


class BillingException(DomainException):
    """Base exception for billing provider errors."""

    pass


class NoBillingConfigError(BillingException):
    """Raised when the billing provider integration is not configured."""

    def __init__(self, message: str = "Billing provider is not configured"):
        super().__init__(message, code="NO_BILLING_CONFIG")


class BillingProviderError(BillingException):
    """Raised when the billing provider rejects a request."""

    def __init__(self, message: str = "Billing provider error", code: str = "BILLING_PROVIDER_ERROR"):
        super().__init__(message, code=code)


class TransientProviderError(BillingProviderError):
    """Raised when the billing provider or the record store is unreachable."""

    def __init__(self, message: str = "Provider temporarily unavailable"):
        super().__init__(message, code="TRANSIENT_PROVIDER_ERROR")


class ProviderResourceMissingError(BillingProviderError):
    """Raised when the billing provider has no object for a reference."""

    def __init__(self, message: str = "Billing provider resource missing"):
        super().__init__(message, code="PROVIDER_RESOURCE_MISSING")


class InvalidPaymentSessionError(BillingException):
    """Raised when a payment session reference is malformed or unusable."""

    def __init__(self, message: str = "Invalid payment session"):
        super().__init__(message, code="INVALID_PAYMENT_SESSION")


class PaymentIncompleteError(BillingException):
    """Raised when a payment session has not been paid."""

    def __init__(self, message: str = "Payment not completed"):
        super().__init__(message, code="PAYMENT_INCOMPLETE")


class InvalidWebhookSignatureError(BillingException):
    """Raised when a webhook payload fails signature verification."""

    def __init__(self, message: str = "Invalid webhook signature"):
        super().__init__(message, code="INVALID_WEBHOOK_SIGNATURE")
