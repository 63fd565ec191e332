"""
Tests for the Message Store.

Ordering, tail windows and the action_id lookup used for idempotency.
"""

import uuid

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from yarrow.exceptions import NotFoundError
from yarrow.models.timestamps import as_utc
from yarrow.schemas.meta import ActionAuditMeta, PlainMeta
from yarrow.services.message_store import MessageStore


class TestAppend:
    """Tests for MessageStore.append."""

    @pytest.mark.asyncio
    async def test_append_copies_agency_from_ticket(self, test_db: AsyncSession, ticket):
        store = MessageStore(test_db)
        message = await store.append(ticket.id, str(ticket.tenant_id), "the boiler is leaking")

        assert message.id is not None
        assert message.ticket_id == ticket.id
        assert message.agency_id == ticket.agency_id
        assert message.is_system is False

    @pytest.mark.asyncio
    async def test_default_meta_is_plain(self, test_db: AsyncSession, ticket):
        store = MessageStore(test_db)
        message = await store.append(ticket.id, str(ticket.tenant_id), "hello")
        assert message.meta == {"kind": "plain"}

    @pytest.mark.asyncio
    async def test_image_url_kept_in_meta(self, test_db: AsyncSession, ticket):
        store = MessageStore(test_db)
        message = await store.append(
            ticket.id,
            str(ticket.tenant_id),
            "see photo",
            meta=PlainMeta(image_url="https://cdn.example.com/leak.jpg"),
        )
        assert message.meta["image_url"] == "https://cdn.example.com/leak.jpg"

    @pytest.mark.asyncio
    async def test_append_to_missing_ticket(self, test_db: AsyncSession):
        store = MessageStore(test_db)
        with pytest.raises(NotFoundError):
            await store.append(uuid.uuid4(), "someone", "hello")


class TestOrdering:
    """Messages come back in insertion order."""

    @pytest.mark.asyncio
    async def test_list_matches_insertion_order(self, test_db: AsyncSession, ticket):
        store = MessageStore(test_db)
        bodies = [f"message {i}" for i in range(8)]
        for i, body in enumerate(bodies):
            await store.append(ticket.id, str(ticket.tenant_id), body, is_system=i % 2 == 1)

        messages = await store.list(ticket.id)

        assert [m.body for m in messages] == bodies
        stamps = [as_utc(m.created_at) for m in messages]
        assert all(a < b for a, b in zip(stamps, stamps[1:]))

    @pytest.mark.asyncio
    async def test_tail_window_is_oldest_first(self, test_db: AsyncSession, ticket):
        store = MessageStore(test_db)
        for i in range(5):
            await store.append(ticket.id, str(ticket.tenant_id), f"m{i}")

        window = await store.list(ticket.id, limit=2)

        assert [m.body for m in window] == ["m3", "m4"]

    @pytest.mark.asyncio
    async def test_zero_limit_returns_nothing(self, test_db: AsyncSession, ticket):
        store = MessageStore(test_db)
        await store.append(ticket.id, str(ticket.tenant_id), "m0")
        assert await store.list(ticket.id, limit=0) == []

    @pytest.mark.asyncio
    async def test_tickets_do_not_share_logs(self, test_db: AsyncSession, ticket):
        from yarrow.services.ticket_state import TicketStateMachine
        from tests.factories import TicketFactory

        other = await TicketStateMachine(test_db).create_ticket(**TicketFactory())
        store = MessageStore(test_db)
        await store.append(ticket.id, "a", "first ticket")
        await store.append(other.id, "b", "second ticket")

        assert [m.body for m in await store.list(ticket.id)] == ["first ticket"]
        assert [m.body for m in await store.list(other.id)] == ["second ticket"]


class TestHasActionId:
    """Tests for the idempotency lookup."""

    @pytest.mark.asyncio
    async def test_finds_recorded_action(self, test_db: AsyncSession, ticket):
        store = MessageStore(test_db)
        await store.append(
            ticket.id,
            "system",
            "Status updated to in_progress by assistant.",
            is_system=True,
            meta=ActionAuditMeta(
                action_type="update_ticket_status",
                action_id="a1",
                params={"status": "in_progress"},
                outcome="ok",
            ),
        )

        assert await store.has_action_id(ticket.id, "a1") is True
        assert await store.has_action_id(ticket.id, "a2") is False

    @pytest.mark.asyncio
    async def test_scoped_to_ticket(self, test_db: AsyncSession, ticket):
        from yarrow.services.ticket_state import TicketStateMachine
        from tests.factories import TicketFactory

        other = await TicketStateMachine(test_db).create_ticket(**TicketFactory())
        store = MessageStore(test_db)
        await store.append(
            other.id,
            "system",
            "Escalated to agent: gas smell",
            is_system=True,
            meta=ActionAuditMeta(action_type="escalate_to_agent", action_id="a1", outcome="ok"),
        )

        assert await store.has_action_id(ticket.id, "a1") is False

    @pytest.mark.asyncio
    async def test_empty_action_id_never_matches(self, test_db: AsyncSession, ticket):
        store = MessageStore(test_db)
        await store.append(ticket.id, "someone", "hello")
        assert await store.has_action_id(ticket.id, None) is False
        assert await store.has_action_id(ticket.id, "") is False

    @pytest.mark.asyncio
    async def test_only_audit_rows_count(self, test_db: AsyncSession, ticket):
        from yarrow.models.message import Message

        # Untagged row written before meta carried a kind
        test_db.add(
            Message(
                ticket_id=ticket.id,
                sender_id="system",
                body="Status updated to resolved by assistant.",
                is_system=True,
                meta={"action_type": "update_ticket_status", "action_id": "legacy1", "params": {}, "outcome": "ok"},
            )
        )
        test_db.add(
            Message(
                ticket_id=ticket.id,
                sender_id="tenant",
                body="see action a9",
                meta={"kind": "plain", "action_id": "a9"},
            )
        )
        await test_db.commit()

        store = MessageStore(test_db)
        assert await store.has_action_id(ticket.id, "legacy1") is True
        assert await store.has_action_id(ticket.id, "a9") is False
