class CartError(Exception):
    """Base class for every failure surfaced by the cart coordinator."""
    status_code = 500

    def to_dict(self):
        return {"error": str(self), "code": type(self).__name__}


class IdentityRequired(CartError):
    """A remote cart operation was attempted without an account id."""
    status_code = 401


class RemoteUnavailable(CartError):
    """The remote store could not be reached, timed out or rejected the call."""
    status_code = 503


class StaleProductReference(CartError):
    """A line item points at a product that is missing or delisted."""
    status_code = 409

    def __init__(self, product_ids):
        self.product_ids = list(product_ids)
        super().__init__(f"Products no longer available: {', '.join(self.product_ids)}")


class InvalidQuantity(CartError):
    status_code = 400


class PartialMergeFailure(CartError):
    """The guest cart was only partly copied into the account cart."""
    status_code = 502

    def __init__(self, merged: int, total: int, cause: Exception = None):
        self.merged = merged
        self.total = total
        self.cause = cause
        super().__init__(f"Merged {merged} of {total} guest cart items before failing: {cause}")

    def to_dict(self):
        data = super().to_dict()
        data.update({"merged": self.merged, "total": self.total})
        return data


class SizeChangeIncomplete(CartError):
    """
    The old size was removed but neither the new size nor the old line could
    be written back. The caller should prompt the shopper to retry.
    """
    status_code = 409

    def __init__(self, product_id: str, old_size: str, new_size: str, cause: Exception = None):
        self.product_id = product_id
        self.old_size = old_size
        self.new_size = new_size
        self.cause = cause
        super().__init__(
            f"Size change for {product_id} from {old_size} to {new_size} is incomplete: {cause}"
        )


class EmptyCart(CartError):
    status_code = 400


class OrderError(Exception):
    status_code = 400

    def to_dict(self):
        return {"error": str(self), "code": type(self).__name__}


class OrderNotFound(OrderError):
    status_code = 404


class OrderNotCancellable(OrderError):
    status_code = 409


class PaymentVerificationFailed(OrderError):
    status_code = 400


class PaymentMismatch(OrderError):
    """The confirmed payment does not belong to this checkout or covers a different amount."""
    status_code = 409


class DuplicatePayment(OrderError):
    """A captured payment was already used to place an order."""
    status_code = 409
