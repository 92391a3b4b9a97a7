# pawcart/services/notification_service.py
from pawcart.celery_worker import celery_app
from pawcart.utils.logging import get_logger

logger = get_logger(__name__)


def _mask(email: str) -> str:
    local, _, domain = email.partition("@")
    return f"{local[:1]}***@{domain}" if domain else "***"


class NotificationService:
    """
    Outbound notifications, processed asynchronously by Celery.
    """

    @staticmethod
    def send_otp_code(destination: str, order_ref: str, code: str):
        """
        Deliver a payment OTP. Used as the OTP channel's delivery hook.
        """
        send_otp_email_task.delay(destination, order_ref, code)

    @staticmethod
    def send_order_paid_notification(user_id: str, order_id: int):
        send_order_paid_notification_task.delay(user_id, order_id)


@celery_app.task(name="pawcart.services.notification_service.send_otp_email_task")
def send_otp_email_task(destination: str, order_ref: str, code: str):
    """
    Celery task - a real deployment hands this to the mail provider.
    Here it only logs; the code itself stays at DEBUG.
    """
    logger.info(f"[NOTIFICATION] OTP for order {order_ref} sent to {_mask(destination)}")
    logger.debug(f"[NOTIFICATION] OTP {code} for order {order_ref}")

    return {"order_ref": order_ref, "destination": _mask(destination), "status": "sent"}


@celery_app.task(name="pawcart.services.notification_service.send_order_paid_notification_task")
def send_order_paid_notification_task(user_id: str, order_id: int):
    logger.info(f"[NOTIFICATION] User {user_id}: Order {order_id} is paid and being processed")

    return {"user_id": user_id, "order_id": order_id, "status": "sent"}
