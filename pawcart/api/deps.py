# pawcart/api/deps.py
from fastapi import Request

from pawcart.services.account_client import AccountClient
from pawcart.services.inventory_client import InventoryClient
from pawcart.services.notification_service import NotificationService
from pawcart.services.otp_channel import RedisOtpChannel
from pawcart.services.stock_reconciler import ReconcilerRegistry


async def get_inventory_client():
    client = InventoryClient()
    try:
        yield client
    finally:
        await client.aclose()


async def get_account_client():
    client = AccountClient()
    try:
        yield client
    finally:
        await client.aclose()


def get_otp_channel(request: Request):
    channel = getattr(request.app.state, "otp_channel", None)
    if channel is None:
        channel = RedisOtpChannel(deliver=NotificationService.send_otp_code)
        request.app.state.otp_channel = channel
    return channel


def get_reconcilers(request: Request) -> ReconcilerRegistry:
    return request.app.state.reconcilers
