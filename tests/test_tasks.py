"""Tests for the Celery tasks (run eagerly)."""

from types import SimpleNamespace

import requests

from pawcart.services import notification_service as notification_service_module
from pawcart.services.account_client import AccountClient
from pawcart.services.notification_service import (
    NotificationService,
    send_order_paid_notification_task,
    send_otp_email_task,
)
from pawcart.tasks.loyalty import deduct_loyalty_points_task


def test_deduct_points_success(monkeypatch):
    calls = []

    def fake_deduct(self, account_ref, points):
        calls.append((account_ref, points))
        return {"id": account_ref, "loyalty_points": 7}

    monkeypatch.setattr(AccountClient, "deduct_points", fake_deduct)

    result = deduct_loyalty_points_task.delay("u1", 35, 12).get()

    assert calls == [("u1", 35)]
    assert result == {"account_ref": "u1", "order_id": 12, "status": "deducted"}


def test_deduct_points_failure_is_reported(monkeypatch):
    def fake_deduct(self, account_ref, points):
        raise requests.ConnectionError("account service down")

    monkeypatch.setattr(AccountClient, "deduct_points", fake_deduct)

    result = deduct_loyalty_points_task.delay("u1", 35, 12).get()

    assert result["status"] == "failed"


def test_otp_email_masks_destination():
    result = send_otp_email_task.delay("owner@example.com", "12", "123456").get()

    assert result == {"order_ref": "12", "destination": "o***@example.com", "status": "sent"}


def test_order_paid_notification():
    result = send_order_paid_notification_task.delay("u1", 12).get()
    assert result["status"] == "sent"


def test_notification_service_dispatches(monkeypatch):
    sent = []
    monkeypatch.setattr(
        notification_service_module, "send_otp_email_task", SimpleNamespace(delay=lambda *args: sent.append(args))
    )

    NotificationService.send_otp_code("owner@example.com", "12", "654321")

    assert sent == [("owner@example.com", "12", "654321")]
