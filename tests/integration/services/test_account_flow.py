"""
Integration Tests for AccountService.

Runs the account service end to end over both storage backends. Only the
outbound notification sender is mocked.
"""

import json
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from smscp.core.exceptions import (
    AuthenticationError,
    InvalidTokenError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from smscp.services.account import AccountService
from smscp.services.export import JsonExportFormatter

PHONE = "+15551234567"


@pytest.fixture
def notifier() -> AsyncMock:
    sender = AsyncMock()
    sender.send = AsyncMock(return_value=None)
    return sender


@pytest.fixture
def service(backend, hasher, tokens, notifier, clock) -> AccountService:
    return AccountService(
        backend,
        hasher,
        tokens,
        notifier,
        base_url="http://sms.test/",
        page_size=20,
        recent_window=timedelta(minutes=5),
        clock=clock,
    )


@pytest.fixture
async def alice(service):
    return await service.create_account("alice", "pw123", "pw123", PHONE)


class TestAccounts:
    """Tests for account creation, login and updates."""

    async def test_create_then_login_then_resolve(self, service, alice):
        logged_in = await service.login("alice", "pw123")
        current = await service.current_user(logged_in.token)

        assert current.id == alice.id
        assert current.phone == PHONE

    async def test_failed_login_is_annotated_with_operation(self, service, alice):
        with pytest.raises(AuthenticationError) as exc_info:
            await service.login("alice", "nope")
        assert exc_info.value.operation == "login"

    async def test_overlong_password_is_invalid_input(self, service):
        password = "x" * 100
        with pytest.raises(ValidationError) as exc_info:
            await service.create_account("alice", password, password, PHONE)
        assert exc_info.value.operation == "create_account"

    async def test_update_returns_token_that_still_resolves(self, service, alice):
        updated = await service.update_account(alice.token, username="alicia", phone="")

        assert updated.username == "alicia"
        assert updated.phone == PHONE
        assert (await service.current_user(updated.token)).username == "alicia"

    async def test_update_password_requires_matching_verify(self, service, alice):
        with pytest.raises(ValidationError):
            await service.update_account(alice.token, password="new", verify="other")

    async def test_update_password_changes_login(self, service, alice):
        await service.update_account(alice.token, password="new-pw", verify="new-pw")

        assert (await service.login("alice", "new-pw")).id == alice.id

    async def test_deleted_account_token_no_longer_resolves(self, service, alice):
        await service.delete_account(alice.token)

        with pytest.raises(NotFoundError):
            await service.current_user(alice.token)


class TestNotes:
    """Tests for note creation, inbound messages and the home view."""

    async def test_create_note_echoes_text_to_phone(self, service, alice, notifier):
        note = await service.create_note(alice.token, "buy milk")

        assert note.text == "buy milk"
        notifier.send.assert_awaited_once_with(PHONE, "buy milk")

    async def test_note_is_kept_when_echo_fails(self, service, alice, notifier):
        notifier.send.side_effect = ConnectionError("sms gateway down")

        with pytest.raises(UpstreamError) as exc_info:
            await service.create_note(alice.token, "buy milk")

        assert exc_info.value.operation == "create_note"
        page = await service.list_notes(alice.token)
        assert [n.text for n in page.notes] == ["buy milk"]

    async def test_inbound_message_is_stored_without_echo(self, service, alice, notifier):
        note = await service.receive_message(PHONE, "from my phone")

        assert note.user_id == alice.id
        notifier.send.assert_not_awaited()

    async def test_inbound_message_from_unknown_phone_raises_not_found(self, service):
        with pytest.raises(NotFoundError):
            await service.receive_message("+10000000000", "who am i")

    async def test_home_combines_first_page_and_recent_note(self, service, alice, clock):
        await service.receive_message(PHONE, "old")
        clock.advance(minutes=10)
        await service.receive_message(PHONE, "fresh")

        dashboard = await service.home(alice.token)

        assert dashboard.user.id == alice.id
        assert [n.text for n in dashboard.page.notes] == ["fresh", "old"]
        assert dashboard.recent.text == "fresh"

    async def test_latest_and_recent_notes(self, service, alice, clock):
        await service.receive_message(PHONE, "first")
        clock.advance(minutes=10)
        await service.receive_message(PHONE, "second")

        assert (await service.latest_note(alice.token)).text == "first"
        assert (await service.recent_note(alice.token)).text == "second"
        assert (await service.recent_note(alice.token, timedelta(minutes=30))).text == "first"

    async def test_zero_window_is_not_replaced_by_default(self, service, alice, clock):
        await service.receive_message(PHONE, "now")
        clock.advance(seconds=1)

        assert await service.recent_note(alice.token, timedelta(0)) is None
        assert (await service.recent_note(alice.token)).text == "now"


class TestPasswordReset:
    """Tests for the forgot-password and reset flow."""

    async def test_reset_link_is_sent_and_redeemable(self, service, alice, notifier):
        await service.forgot_password("alice")

        destination, message = notifier.send.await_args.args
        assert destination == PHONE
        assert "http://sms.test/reset/" in message
        reset_token = message.rsplit("/reset/", 1)[1]

        user = await service.reset_password(reset_token, "brand-new", "brand-new")

        assert user.id == alice.id
        assert (await service.login("alice", "brand-new")).id == alice.id

    async def test_user_token_is_not_a_reset_token(self, service, alice):
        with pytest.raises(InvalidTokenError):
            await service.reset_password(alice.token, "x", "x")

    async def test_forgot_password_for_unknown_user_raises_not_found(self, service):
        with pytest.raises(NotFoundError):
            await service.forgot_password("nobody")


class TestExport:
    """Tests for the data export path."""

    async def test_export_contains_notes_but_no_password_hash(self, service, alice):
        await service.receive_message(PHONE, "one")
        await service.receive_message(PHONE, "two")

        data = await service.export_data(alice.token, JsonExportFormatter())
        document = json.loads(data)

        assert document["user"]["username"] == "alice"
        assert "password_hash" not in document["user"]
        assert [n["text"] for n in document["notes"]] == ["one", "two"]
        assert all(n["token"] for n in document["notes"])
