"""Error taxonomy shared by the services and mapped to HTTP in ``rideshare.main``."""


class RideshareError(Exception):
    kind = "internal"
    message = "internal error"

    def __init__(self, message: str = None):
        self.message = message or self.message
        super().__init__(self.message)


# --- validation -------------------------------------------------------------

class ValidationFailed(RideshareError):
    kind = "validation"
    message = "invalid request"


# --- lookups ----------------------------------------------------------------

class RideNotFound(RideshareError):
    kind = "not_found"
    message = "ride not found"


class UserNotFound(RideshareError):
    kind = "not_found"
    message = "user not found"


# --- authorization ----------------------------------------------------------

class NotAuthenticated(RideshareError):
    kind = "unauthenticated"
    message = "authentication required"


class NotRideCreator(RideshareError):
    kind = "forbidden"
    message = "only the ride creator can delete this ride"


class ContactsForbidden(RideshareError):
    kind = "forbidden"
    message = "unauthorized to view contacts for this ride"


# --- business-rule conflicts ------------------------------------------------

class RideNotActive(RideshareError):
    kind = "conflict"
    message = "ride is not open for joining"


class RideFull(RideshareError):
    kind = "conflict"
    message = "ride is already full"


class SelfJoin(RideshareError):
    kind = "conflict"
    message = "you cannot join your own ride"


class AlreadyParticipating(RideshareError):
    kind = "conflict"
    message = "you have already joined this ride"


class NotParticipating(RideshareError):
    kind = "conflict"
    message = "not an active participant"


class PaymentNotAllowed(RideshareError):
    kind = "conflict"
    message = "no participation awaiting payment for this ride"


class InvalidTransition(RideshareError):
    kind = "conflict"

    def __init__(self, current, event):
        self.current = current
        self.event = event
        name = current.value if current is not None else "not_participant"
        super().__init__(f"cannot apply {event.value} to participation in state {name}")


# --- payments ---------------------------------------------------------------

class NoPaymentMethod(RideshareError):
    kind = "payment_required"
    message = "no saved payment method; set one up or pay manually"


class PaymentDeclined(RideshareError):
    kind = "payment_failed"
    message = (
        "payment with the saved method failed; "
        "please use the manual payment flow or a different method"
    )


class PaymentGatewayError(RideshareError):
    kind = "gateway"
    message = "payment provider is unavailable"


# --- webhook ----------------------------------------------------------------

class WebhookSignatureInvalid(RideshareError):
    kind = "webhook_rejected"
    message = "invalid webhook signature"


class MalformedEvent(RideshareError):
    kind = "webhook_rejected"
    message = "malformed webhook payload"


class WebhookProcessingFailed(RideshareError):
    kind = "webhook_retry"
    message = "webhook processing failed"


HTTP_STATUS_BY_KIND = {
    "validation": 400,
    "unauthenticated": 401,
    "not_found": 404,
    "forbidden": 403,
    "conflict": 409,
    "payment_required": 402,
    "payment_failed": 402,
    "gateway": 502,
    "webhook_rejected": 400,
    "webhook_retry": 500,
    "internal": 500,
}
