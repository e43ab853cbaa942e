# checkout/domain/errors.py
"""Wyjatki domeny checkout.

Dziedzicza po wbudowanych ValueError / PermissionError / RuntimeError,
ktore routery juz mapuja na kody HTTP.
"""


# bledy wejscia - nic nie zostaje zapisane
class MissingCartIdentityError(ValueError):
    pass


class EmptyCartError(ValueError):
    pass


class SnapshotTooLargeError(ValueError):
    pass


class InvalidStatusTransitionError(ValueError):
    pass


# zaleznosci zewnetrzne - ponawia wolajacy
class PaymentProcessorError(RuntimeError):
    pass


class CatalogError(RuntimeError):
    pass


class CartConflictError(RuntimeError):
    pass


class DuplicateOrderError(RuntimeError):
    """Ktos inny wstawil juz zamowienie dla tego payment_ref."""

    def __init__(self, payment_ref: str):
        super().__init__(f"Order for payment {payment_ref} already exists")
        self.payment_ref = payment_ref


class ReconciliationImpossibleError(RuntimeError):
    """Platnosc udana, ale nie ma skad wziac pozycji zamowienia."""

    def __init__(self, payment_ref: str):
        super().__init__(f"No recoverable item source for payment {payment_ref}")
        self.payment_ref = payment_ref


class InvalidSignatureError(PermissionError):
    pass


class ProductNotFoundError(ValueError):
    pass
