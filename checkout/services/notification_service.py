# checkout/services/notification_service.py
from checkout.celery_worker import celery_app
from checkout.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationService:
    """
    Serwis do wysyłania powiadomień.
    Używa Celery do asynchronicznego przetwarzania.
    """

    @staticmethod
    def send_order_confirmation(order_id: int, order_number: str, account_id: int | None):
        """
        Wysyła potwierdzenie złożenia zamówienia.
        Błąd brokera nie może cofnąć zamówienia - tylko logujemy.
        """
        try:
            send_order_confirmation_task.delay(order_id, order_number, account_id)
        except Exception as e:
            logger.error(f"Failed to enqueue confirmation for order {order_number}: {e}")


@celery_app.task(name="checkout.services.notification_service.send_order_confirmation_task")
def send_order_confirmation_task(order_id: int, order_number: str, account_id: int | None):
    """
    Celery task - w prawdziwym systemie wysłałby email.
    Teraz tylko loguje.
    """
    logger.info(f"[NOTIFICATION] Account {account_id}: order {order_number} (id {order_id}) confirmed")

    return {"order_id": order_id, "order_number": order_number, "status": "sent"}
