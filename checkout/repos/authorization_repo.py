# checkout/repos/authorization_repo.py
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from checkout.data.models.payment_authorization import PaymentAuthorizationModel


class AuthorizationRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_by_ref(self, auth_ref: str) -> Optional[PaymentAuthorizationModel]:
        return self.db.execute(
            select(PaymentAuthorizationModel).where(PaymentAuthorizationModel.auth_ref == auth_ref)
        ).scalar_one_or_none()

    def get_open_for_cart(self, cart_id: int) -> Optional[PaymentAuthorizationModel]:
        return self.db.execute(
            select(PaymentAuthorizationModel)
            .where(
                PaymentAuthorizationModel.cart_id == cart_id,
                PaymentAuthorizationModel.status == "OPEN",
            )
            .order_by(PaymentAuthorizationModel.id.desc())
            .limit(1)
        ).scalar_one_or_none()

    def count_for_cart(self, cart_id: int) -> int:
        return self.db.execute(
            select(func.count(PaymentAuthorizationModel.id)).where(PaymentAuthorizationModel.cart_id == cart_id)
        ).scalar_one()

    def create(self, authorization: PaymentAuthorizationModel) -> PaymentAuthorizationModel:
        self.db.add(authorization)
        self.db.commit()
        self.db.refresh(authorization)
        return authorization

    def set_status(self, auth_ref: str, status: str, only_if: Optional[str] = None) -> int:
        stmt = update(PaymentAuthorizationModel).where(PaymentAuthorizationModel.auth_ref == auth_ref)
        if only_if is not None:
            stmt = stmt.where(PaymentAuthorizationModel.status == only_if)
        result = self.db.execute(
            stmt.values(status=status).execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount
