"""Tests for the chronological thread walk."""

import pytest

from blockwatch.common.schemas import RawMessage, Reaction, Severity


def _msg(ts, text, thread_ts=None, **kwargs):
    return RawMessage(ts=ts, text=text, thread_ts=thread_ts, **kwargs)


class TestChronologicalWalk:
    def test_orders_by_numeric_timestamp(self):
        from blockwatch.detection.consensus import chronological_walk
        messages = [_msg("10.1", "b"), _msg("9.5", "a")]

        def reducer(state, message, hits):
            return state + [message.ts]

        assert chronological_walk(messages, (), reducer, []) == ["9.5", "10.1"]

    def test_presorted_keeps_input_order(self):
        from blockwatch.detection.consensus import chronological_walk
        messages = [_msg("10.1", "b"), _msg("9.5", "a")]
        order = chronological_walk(messages, (), lambda s, m, h: s + [m.ts], [], presorted=True)
        assert order == ["10.1", "9.5"]

    def test_hits_follow_table_order(self):
        from blockwatch.detection.consensus import chronological_walk
        from blockwatch.detection.patterns import PatternLibrary, SignalKind
        library = PatternLibrary()
        table = library.rules_of(SignalKind.BLOCKING)
        labels = chronological_walk(
            [_msg("1", "PROJ-1 is a release blocker")],
            table,
            lambda s, m, hits: [r.label for r in hits],
            [],
        )
        assert labels[0] == "release blocker"


class TestThreadConsensusResolver:
    @pytest.fixture
    def resolver(self):
        from blockwatch.detection.consensus import ThreadConsensusResolver
        return ThreadConsensusResolver()

    def test_blocker_then_fixed_is_resolved(self, resolver):
        anchor = _msg("100.0", "PROJ-1 is a release blocker")
        reply = _msg("101.0", "fixed and deployed to prod", "100.0")
        result = resolver.resolve(anchor, [reply])
        assert not result.blocking
        assert result.resolved
        assert result.was_blocking
        assert result.resolution_text == "fixed and deployed to prod"
        assert result.severity == Severity.BLOCKING_RESOLVED

    def test_resolution_beats_blocking_in_same_message(self, resolver):
        result = resolver.resolve(_msg("100.0", "PROJ-1 is not a blocker"))
        assert not result.blocking
        assert not result.was_blocking
        assert result.severity == Severity.NONE

    def test_reblock_clears_resolution(self, resolver):
        anchor = _msg("100.0", "PROJ-1 is a release blocker")
        replies = [
            _msg("101.0", "fixed", "100.0"),
            _msg("102.0", "still blocking the release, regression is back", "100.0"),
        ]
        result = resolver.resolve(anchor, replies)
        assert result.blocking
        assert not result.resolved
        assert result.resolution_text is None
        assert result.severity == Severity.BLOCKING

    def test_replies_are_walked_in_time_order(self, resolver):
        anchor = _msg("100.0", "PROJ-1 is a release blocker")
        replies = [
            _msg("103.0", "fixed", "100.0"),
            _msg("102.0", "still blocking", "100.0"),
        ]
        assert resolver.resolve(anchor, replies).severity == Severity.BLOCKING_RESOLVED

    def test_critical(self, resolver):
        result = resolver.resolve(_msg("100.0", "PROJ-3 urgent: checkout fails"))
        assert result.critical
        assert result.severity == Severity.CRITICAL

    def test_critical_negation_is_sticky(self, resolver):
        anchor = _msg("100.0", "PROJ-2 is critical")
        replies = [
            _msg("101.0", "actually not critical", "100.0"),
            _msg("102.0", "critical fix incoming", "100.0"),
        ]
        result = resolver.resolve(anchor, replies)
        assert not result.critical
        assert result.severity == Severity.NONE

    def test_no_go_reaction_blocks(self, resolver):
        anchor = _msg("100.0", "PROJ-4 checkout regression", reactions=[Reaction(name="no_go", count=2)])
        result = resolver.resolve(anchor)
        assert result.blocking
        assert result.severity == Severity.BLOCKING

    def test_hotfix_commitment_survives_fix_ready(self, resolver):
        result = resolver.resolve(_msg("100.0", "We will hotfix PROJ-456 (fix ready)"))
        assert result.hotfix_commitment
        assert result.resolved
        assert result.severity == Severity.BLOCKING

    def test_ui_terminology_is_ignored(self, resolver):
        result = resolver.resolve(_msg("100.0", "PROJ-5: the answer blocks are blocking the layout"))
        assert not result.blocking
        assert result.severity == Severity.NONE

    def test_signals_are_recorded(self, resolver):
        anchor = _msg("100.0", "PROJ-1 is a release blocker")
        reply = _msg("101.0", "fixed", "100.0")
        signals = resolver.resolve(anchor, [reply]).signals
        assert signals == ["100.0:blocking:release blocker", "101.0:resolution:fixed"]
