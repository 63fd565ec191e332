"""
Tests for the Conversation Summarizer.

The summary only grows, and a failed update never raises.
"""

import uuid
from datetime import datetime, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from yarrow.services.conversation_summarizer import ConversationSummarizer, observation_line


class TestObservationLine:
    def test_format(self):
        at = datetime(2025, 3, 1, 9, 30, tzinfo=timezone.utc)
        line = observation_line("the tap is dripping", at)
        assert line == "New message at 2025-03-01T09:30:00+00:00: the tap is dripping"

    def test_body_truncated_to_160_chars(self):
        line = observation_line("x" * 500)
        assert line.endswith(": " + "x" * 160)


class TestAppendSummary:
    @pytest.mark.asyncio
    async def test_first_line_creates_summary(self, test_db: AsyncSession, ticket):
        summarizer = ConversationSummarizer(test_db)

        assert await summarizer.append_summary(ticket.id, "Tenant reports leak.") is True

        summary = await summarizer.get_summary(ticket.id)
        assert summary.summary_text == "Tenant reports leak."
        assert summary.agency_id == ticket.agency_id
        assert summary.last_message_at is not None

    @pytest.mark.asyncio
    async def test_lines_accumulate_in_order(self, test_db: AsyncSession, ticket):
        summarizer = ConversationSummarizer(test_db)
        lines = [f"update {i}" for i in range(4)]
        previous = ""

        for line in lines:
            await summarizer.append_summary(ticket.id, line)
            current = (await summarizer.get_summary(ticket.id)).summary_text
            assert current.startswith(previous)
            previous = current

        assert previous == "update 0\n- update 1\n- update 2\n- update 3"

    @pytest.mark.asyncio
    async def test_blank_line_ignored(self, test_db: AsyncSession, ticket):
        summarizer = ConversationSummarizer(test_db)

        assert await summarizer.append_summary(ticket.id, "   ") is False
        assert await summarizer.append_summary(ticket.id, None) is False
        assert await summarizer.get_summary(ticket.id) is None

    @pytest.mark.asyncio
    async def test_failure_is_swallowed(self, test_db: AsyncSession):
        summarizer = ConversationSummarizer(test_db)

        assert await summarizer.append_summary(uuid.uuid4(), "orphan line") is False
