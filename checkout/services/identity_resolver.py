# checkout/services/identity_resolver.py
import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from checkout.data.models.cart import CartModel
from checkout.domain.errors import CartConflictError, MissingCartIdentityError
from checkout.repos.cart_repo import CartRepo
from checkout.services.cart_service import CartService
from checkout.utils.retry import conflict_retry
from checkout.utils.logging import get_logger

logger = get_logger(__name__)


def mint_session_token() -> str:
    return uuid.uuid4().hex


@dataclass
class ResolvedCart:
    cart: Optional[CartModel]
    # token ktory przegladarka ma trzymac po tym requescie
    session_token: Optional[str]
    merged: bool = False


class CartIdentityResolver:
    """
    Zwraca jedyny wlasciwy koszyk dla requestu: po koncie albo po tokenie
    sesji. Przy pierwszym kontakcie zalogowanego uzytkownika koszyk
    anonimowy przechodzi na konto (albo jest do niego dolaczany),
    a przegladarka dostaje nowy token.
    """

    def __init__(self, db: Session, cart_service: CartService):
        self.repo = CartRepo(db)
        self.cart_service = cart_service

    @conflict_retry(IntegrityError, CartConflictError)
    def resolve(
        self,
        session_token: Optional[str] = None,
        account_id: Optional[int] = None,
        create: bool = True,
    ) -> ResolvedCart:
        if session_token is None and account_id is None:
            raise MissingCartIdentityError("Brak tokenu sesji i konta - wolajacy musi wygenerowac token")

        try:
            if account_id is None:
                return self._resolve_anonymous(session_token, create)
            return self._resolve_account(session_token, account_id, create)
        except IntegrityError:
            # ktos rownolegle utworzyl/przejal koszyk, resolve od nowa
            self.repo.rollback()
            logger.warning(f"Cart identity race (account={account_id}), retrying resolve")
            raise

    def _resolve_anonymous(self, session_token: str, create: bool) -> ResolvedCart:
        cart = self.repo.get_by_session(session_token)
        if cart is None and create:
            cart = self.repo.create_cart(CartModel(session_token=session_token, version=1))
            logger.info(f"Created anonymous cart {cart.id}")
        return ResolvedCart(cart=cart, session_token=session_token)

    def _resolve_account(self, session_token: Optional[str], account_id: int, create: bool) -> ResolvedCart:
        account_cart = self.repo.get_by_account(account_id)
        session_cart = self.repo.get_by_session(session_token) if session_token else None

        if session_cart is None:
            if account_cart is None and create:
                account_cart = self.repo.create_cart(CartModel(account_id=account_id, version=1))
                logger.info(f"Created cart {account_cart.id} for account {account_id}")
            return ResolvedCart(cart=account_cart, session_token=session_token)

        if account_cart is None:
            # przejecie: anonimowy koszyk staje sie koszykiem konta
            rowcount = self.repo.claim_session_cart(session_cart.id, session_token, account_id)
            if rowcount == 0:
                self.repo.rollback()
                raise CartConflictError("Koszyk sesji zostal juz przejety przez inne zadanie")
            self.repo.commit()
            self.repo.refresh(session_cart)
            logger.info(f"Cart {session_cart.id} reassigned from session to account {account_id}")
            return ResolvedCart(cart=session_cart, session_token=mint_session_token(), merged=True)

        # oba istnieja: linie anonimowego koszyka ida do koszyka konta
        self.cart_service.merge_into(session_cart, account_cart)
        rowcount = self.repo.update_cart_version(
            cart_id=session_cart.id,
            old_version=session_cart.version,
            new_data={"session_token": None, "version": session_cart.version + 1},
        )
        if rowcount == 0:
            self.repo.rollback()
            raise CartConflictError("Koszyk sesji zostal zmodyfikowany podczas laczenia")
        rowcount = self.repo.update_cart_version(
            cart_id=account_cart.id,
            old_version=account_cart.version,
            new_data={"version": account_cart.version + 1},
        )
        if rowcount == 0:
            self.repo.rollback()
            raise CartConflictError("Koszyk konta zostal zmodyfikowany podczas laczenia")
        self.repo.commit()
        self.repo.refresh(account_cart)
        logger.info(f"Session cart {session_cart.id} merged into account cart {account_cart.id}")
        return ResolvedCart(cart=account_cart, session_token=mint_session_token(), merged=True)
