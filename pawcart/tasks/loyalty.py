# pawcart/tasks/loyalty.py
from requests import RequestException

from pawcart.celery_worker import celery_app
from pawcart.services.account_client import AccountClient
from pawcart.utils.logging import get_logger

logger = get_logger(__name__)


@celery_app.task(name="pawcart.tasks.loyalty.deduct_loyalty_points_task")
def deduct_loyalty_points_task(account_ref: str, points: int, order_id: int):
    """
    Deduct points redeemed on a paid order. The account service floors the
    balance at 0. A failure here is logged and never touches the order.
    """
    logger.info(f"Deducting {points} points from {account_ref} for order {order_id}")

    try:
        result = AccountClient().deduct_points(account_ref, points)
    except RequestException as e:
        logger.error(f"Failed to deduct {points} points from {account_ref} for order {order_id}: {e}")
        return {"account_ref": account_ref, "order_id": order_id, "status": "failed"}

    logger.info(f"Points deducted for order {order_id}, new balance: {result.get('loyalty_points')}")
    return {"account_ref": account_ref, "order_id": order_id, "status": "deducted"}
