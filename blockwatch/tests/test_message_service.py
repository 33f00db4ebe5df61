"""Tests for seed search and thread expansion."""

import pytest
from unittest.mock import AsyncMock

from blockwatch.common.schemas import RawMessage


def _msg(ts, text, thread_ts=None, **kwargs):
    return RawMessage(ts=ts, text=text, thread_ts=thread_ts, **kwargs)


@pytest.fixture
def client():
    return AsyncMock()


@pytest.fixture
def service(client):
    from blockwatch.detection.message_service import SlackMessageService
    return SlackMessageService(client)


class TestFindBlockerMessages:
    @pytest.mark.asyncio
    async def test_runs_every_search_for_today(self, service, client):
        client.search_messages.return_value = []
        await service.find_blocker_messages("release", "today")

        queries = [call.args[0] for call in client.search_messages.await_args_list]
        assert len(queries) == 7
        assert all(q.endswith("on:today") for q in queries)
        assert '"release blocker" on:today' in queries
        assert all(call.args[1] == "release" for call in client.search_messages.await_args_list)

    @pytest.mark.asyncio
    async def test_explicit_date(self, service, client):
        client.search_messages.return_value = []
        await service.find_blocker_messages("release", "2024-06-10")
        assert client.search_messages.await_args_list[0].args[0].endswith("on:2024-06-10")

    @pytest.mark.asyncio
    async def test_all_searches_failed(self, service, client):
        from blockwatch.common.errors import AllSearchesFailedError
        client.search_messages.side_effect = RuntimeError("rate limited")
        with pytest.raises(AllSearchesFailedError, match="All searches failed"):
            await service.find_blocker_messages("release")

    @pytest.mark.asyncio
    async def test_partial_failure_is_tolerated(self, service, client):
        def search(query, channel=None):
            if "hotfix" in query:
                raise RuntimeError("timeout")
            return [_msg("100.0", "PROJ-1 is a blocker")]

        client.search_messages.side_effect = search
        seeds = await service.find_blocker_messages("release")

        assert [m.ts for m in seeds] == ["100.0"]
        assert len(service.last_search_errors) == 1
        assert "hotfix" in service.last_search_errors[0]

    @pytest.mark.asyncio
    async def test_dedupes_and_filters(self, service, client):
        client.search_messages.return_value = [
            _msg("100.0", "PROJ-1 is a blocker"),
            _msg("200.0", "PROJ-2 is not urgent"),
            _msg("300.0", "Frontend release update: PROJ-3 blocker fixed"),
            _msg("100.0", "PROJ-1 is a blocker"),
        ]
        seeds = await service.find_blocker_messages("release")
        assert [m.ts for m in seeds] == ["100.0"]


class TestExtractThreadId:
    def test_thread_ts(self):
        from blockwatch.detection.message_service import SlackMessageService
        assert SlackMessageService.extract_thread_id(_msg("101.0", "r", "100.0")) == "100.0"

    def test_permalink_thread_ts(self):
        from blockwatch.detection.message_service import SlackMessageService
        message = _msg("101.0", "r", permalink="https://acme.slack.com/archives/C1/p101?thread_ts=100.0&cid=C1")
        assert SlackMessageService.extract_thread_id(message) == "100.0"

    def test_parent_with_replies(self):
        from blockwatch.detection.message_service import SlackMessageService
        assert SlackMessageService.extract_thread_id(_msg("100.0", "p", reply_count=2)) == "100.0"

    def test_leaf(self):
        from blockwatch.detection.message_service import SlackMessageService
        assert SlackMessageService.extract_thread_id(_msg("100.0", "leaf")) is None

    def test_with_thread_ts_from_permalink(self):
        from blockwatch.detection.message_service import SlackMessageService
        message = _msg("101.0", "r", permalink="https://acme.slack.com/archives/C1/p101?thread_ts=100.0&cid=C1")
        normalized = SlackMessageService.with_thread_ts(message)
        assert normalized.thread_ts == "100.0"
        assert normalized.is_reply

    def test_with_thread_ts_leaves_parents_alone(self):
        from blockwatch.detection.message_service import SlackMessageService
        parent = _msg("100.0", "p", reply_count=2)
        assert SlackMessageService.with_thread_ts(parent).thread_ts is None



class TestGetThreadContext:
    @pytest.mark.asyncio
    async def test_parent_and_replies(self, service, client):
        parent = _msg("100.0", "PROJ-1 is a blocker", reply_count=2)
        client.get_message_details.return_value = parent
        client.get_thread_replies.return_value = [
            parent,
            _msg("101.0", "looking", "100.0"),
            _msg("102.0", "fixed", "100.0"),
        ]
        seed = _msg("102.0", "fixed", "100.0")
        context = await service.get_thread_context(seed, "C1")

        assert [m.ts for m in context] == ["100.0", "101.0", "102.0"]
        client.get_message_details.assert_awaited_once_with("C1", "100.0")

    @pytest.mark.asyncio
    async def test_seed_permalink_carried_to_parent(self, service, client):
        client.get_message_details.return_value = _msg("100.0", "PROJ-1 blocker", reply_count=1)
        client.get_thread_replies.return_value = []
        seed = _msg("100.0", "PROJ-1 blocker", reply_count=1, permalink="https://x/p100")
        context = await service.get_thread_context(seed, "C1")
        assert context[0].permalink == "https://x/p100"

    @pytest.mark.asyncio
    async def test_leaf_is_returned_alone(self, service, client):
        seed = _msg("100.0", "PROJ-1 blocker")
        assert await service.get_thread_context(seed, "C1") == [seed]
        client.get_message_details.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fetch_failure_returns_message(self, service, client):
        client.get_message_details.side_effect = RuntimeError("Thread fetch failed")
        seed = _msg("100.0", "PROJ-1 blocker", reply_count=3)
        assert await service.get_thread_context(seed, "C1") == [seed]
