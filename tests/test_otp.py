"""Tests for one-time code generation and records."""

from datetime import datetime, timedelta, timezone

import pytest

from peerassist.otp import (
    OneTimeCode,
    OtpContext,
    codes_match,
    generate_code,
    issue_password_reset_code,
    issue_task_completion_code,
    otp_key,
)

NOW = datetime(2025, 4, 20, 12, 0, tzinfo=timezone.utc)


class TestGenerateCode:

    def test_six_digits_by_default(self):
        for _ in range(50):
            code = generate_code()
            assert len(code) == 6
            assert code.isdigit()

    def test_leading_zeros_preserved(self, monkeypatch):
        monkeypatch.setattr("peerassist.otp.secrets.randbelow", lambda n: 42)

        assert generate_code() == "000042"

    def test_custom_length(self):
        assert len(generate_code(8)) == 8

    def test_invalid_length(self):
        with pytest.raises(ValueError):
            generate_code(0)


class TestCodesMatch:

    def test_equal(self):
        assert codes_match("012345", "012345") is True

    def test_leading_zero_significant(self):
        assert codes_match("012345", "12345") is False


class TestIssue:

    def test_password_reset_valid_for_ten_minutes(self):
        otp = issue_password_reset_code("a@x.com", now=NOW)

        assert otp.context == OtpContext.PASSWORD_RESET
        assert otp.expires_at == NOW + timedelta(minutes=10)
        assert otp.key == ("a@x.com", "password_reset", None)

    def test_task_completion_valid_for_thirty_minutes(self):
        otp = issue_task_completion_code("a@x.com", "task-1", "b@x.com", now=NOW)

        assert otp.context == OtpContext.TASK_COMPLETION
        assert otp.expires_at == NOW + timedelta(minutes=30)
        assert otp.worker_email == "b@x.com"
        assert otp.key == otp_key("a@x.com", OtpContext.TASK_COMPLETION, "task-1")

    def test_expiry_boundary(self):
        otp = issue_password_reset_code("a@x.com", now=NOW)

        assert otp.is_expired(NOW + timedelta(minutes=9, seconds=59)) is False
        assert otp.is_expired(NOW + timedelta(minutes=10)) is True


class TestSerialization:

    def test_from_dict_parses_timestamp(self):
        otp = OneTimeCode.from_dict(
            {
                "email": "a@x.com",
                "code": "000001",
                "context": "task_completion",
                "expires_at": "2025-04-20T12:30:00Z",
                "task_id": "task-1",
                "worker_email": "b@x.com",
            }
        )

        assert otp.expires_at == NOW + timedelta(minutes=30)
        assert otp.context == OtpContext.TASK_COMPLETION
        assert otp.to_dict()["context"] == "task_completion"
