"""
Tests for the quota alert email task.
"""
from unittest.mock import AsyncMock

import pytest

from surveyflow.config import settings
from workers.tasks import email_tasks
from workers.tasks.email_tasks import build_quota_alert, send_quota_alert


ALERT = {
    "quota_id": "quota-1",
    "quota_name": "Men 18-34",
    "survey_id": "survey-1",
    "percentage": 80,
    "current_count": 40,
    "limit": 50,
    "recipients": ["ops@example.com", "pm@example.com"],
}


class TestBuildQuotaAlert:
    def test_partial_fill(self):
        subject, body_html, body_text = build_quota_alert("Men 18-34", "survey-1", 80, 40, 50)
        assert subject == 'Quota "Men 18-34" is 80% full'
        assert "Current count: 40" in body_text
        assert "<strong>80%</strong>" in body_html

    def test_full(self):
        subject, _, body_text = build_quota_alert("Men 18-34", "survey-1", 100, 50, 50)
        assert subject == 'Quota "Men 18-34" is FULL'
        assert "now full" in body_text


class TestSendQuotaAlert:
    def test_skipped_when_smtp_disabled(self, monkeypatch):
        monkeypatch.setattr(settings, "smtp_enabled", False)
        result = send_quota_alert(**ALERT)
        assert result == {"status": "skipped", "quota_id": "quota-1"}

    @pytest.fixture
    def smtp_enabled(self, monkeypatch):
        monkeypatch.setattr(settings, "smtp_enabled", True)
        monkeypatch.setattr(settings, "smtp_host", "smtp.example.com")

    def test_sends_to_every_recipient(self, smtp_enabled, monkeypatch):
        send = AsyncMock()
        monkeypatch.setattr(email_tasks, "_send_via_smtp", send)

        result = send_quota_alert(**ALERT)

        assert result["sent"] == 2
        assert [c.args[0] for c in send.await_args_list] == ["ops@example.com", "pm@example.com"]

    def test_failed_recipient_does_not_stop_others(self, smtp_enabled, monkeypatch):
        send = AsyncMock(side_effect=[OSError("connection refused"), None])
        monkeypatch.setattr(email_tasks, "_send_via_smtp", send)

        result = send_quota_alert(**ALERT)

        assert result == {"status": "completed", "quota_id": "quota-1", "sent": 1}
