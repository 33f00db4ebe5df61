"""Tests for the signal table and the ticket extractor."""

import pytest


class TestPatternLibrary:
    def test_rules_are_sorted_by_priority(self):
        from blockwatch.detection.patterns import PatternLibrary
        rules = PatternLibrary().rules
        priorities = [r.priority for r in rules]
        assert priorities == sorted(priorities, reverse=True)

    def test_release_blocker_is_most_specific(self):
        from blockwatch.detection.patterns import PatternLibrary
        rule = PatternLibrary().blocking_rule_for("PROJ-123 is a release blocker")
        assert rule.label == "release blocker"

    def test_ui_terminology_never_blocks(self):
        from blockwatch.detection.patterns import PatternLibrary
        library = PatternLibrary()
        assert library.is_ui_context("The answer blocks are broken in the editor")
        assert library.blocking_rule_for("The answer blocks are blocking the layout") is None

    def test_ad_blocker_chatter_without_release_context(self):
        from blockwatch.detection.patterns import PatternLibrary
        library = PatternLibrary()
        assert library.blocking_rule_for("my ad blocker hides the banner") is None
        assert library.blocking_rule_for(
            "ad blocker breaks checkout in production, blocking the release"
        ) is not None

    def test_hotfix_rule_skipped_when_qualified(self):
        from blockwatch.detection.patterns import PatternLibrary
        library = PatternLibrary()
        assert library.blocking_rule_for("hotfix deployed for PROJ-1") is None
        assert library.blocking_rule_for("we need a hotfix for PROJ-1").label == "hotfix"

    @pytest.mark.parametrize("text", [
        "cc @test-managers PROJ-9 looks bad",
        "cc @test_managers PROJ-9 looks bad",
    ])
    def test_gatekeeper_mention(self, text):
        from blockwatch.detection.patterns import PatternLibrary
        assert PatternLibrary().blocking_rule_for(text).label == "gatekeeper"

    def test_custom_gatekeeper_handle(self):
        from blockwatch.detection.patterns import PatternLibrary
        library = PatternLibrary(gatekeeper_handle="@release-gate")
        assert library.blocking_rule_for("cc @release-gate PROJ-9").label == "gatekeeper"
        assert library.blocking_rule_for("cc @test-managers PROJ-9") is None

    def test_no_go(self):
        from blockwatch.detection.patterns import PatternLibrary
        library = PatternLibrary()
        assert library.blocking_rule_for("no go for PROJ-5").label == "no-go"
        assert library.is_no_go_reaction("no_go")
        assert library.is_no_go_reaction("no-go")
        assert not library.is_no_go_reaction("go")

    def test_hotfix_context(self):
        from blockwatch.detection.patterns import PatternLibrary
        library = PatternLibrary()
        assert library.is_hotfix_context("We will hotfix PROJ-456")
        assert library.is_hotfix_context("• PROJ-1 hotfix pending")
        assert not library.is_hotfix_context("PROJ-1 discussion")

    def test_seed_filters(self):
        from blockwatch.detection.patterns import PatternLibrary
        assert PatternLibrary.has_negative_seed_phrase("PROJ-1 is NOT BLOCKING anymore")
        assert PatternLibrary.is_release_manager_summary("Frontend release update: all green")
        assert not PatternLibrary.has_negative_seed_phrase("PROJ-1 is blocking")

    def test_build_search_queries(self):
        from blockwatch.detection.patterns import build_search_queries
        assert build_search_queries(["blocker"], "2024-06-10") == ["blocker on:2024-06-10"]
        assert build_search_queries(["blocker", '"no go"']) == ["blocker on:today", '"no go" on:today']


class TestTicketExtractor:
    def test_extract_tickets_dedupes_in_order(self):
        from blockwatch.detection.extractor import TicketExtractor
        extractor = TicketExtractor(tracker_base_url="https://jira.example.com/")
        tickets = extractor.extract_tickets("PROJ-1 and CORE-22, again PROJ-1, not proj-3")
        assert [t.key for t in tickets] == ["PROJ-1", "CORE-22"]
        assert tickets[0].url == "https://jira.example.com/browse/PROJ-1"
        assert tickets[1].project == "CORE"

    def test_extract_tickets_without_base_url(self):
        from blockwatch.detection.extractor import TicketExtractor
        tickets = TicketExtractor().extract_tickets("PROJ-1")
        assert tickets[0].url is None

    def test_has_blocking_indicators(self):
        from blockwatch.detection.extractor import TicketExtractor
        extractor = TicketExtractor()
        assert extractor.has_blocking_indicators("PROJ-1 is blocking the release")
        assert not extractor.has_blocking_indicators("the code block renders wrong, blocking me")

    @pytest.mark.parametrize("text,expected", [
        ("This is critical for PROJ-1", True),
        ("PROJ-1 is urgent", True),
        ("this is not critical", False),
        ("it isn't really urgent", False),
        ("low priority, but critical eventually", False),
        ("this is on the critical path", False),
    ])
    def test_has_critical_indicators(self, text, expected):
        from blockwatch.detection.extractor import TicketExtractor
        assert TicketExtractor().has_critical_indicators(text) is expected

    def test_bulleted_blocker_list_with_thread_links(self):
        from blockwatch.detection.extractor import TicketExtractor
        text = (
            "Blockers for today:\n"
            "• PROJ-1 login broken\n"
            "   ◦ Mentioned here <https://acme.slack.com/archives/C1/p123|thread>\n"
            "• PROJ-2 and PROJ-3 checkout"
        )
        entries = TicketExtractor().parse_blocker_entries(text)
        assert [e.ticket.key for e in entries] == ["PROJ-1", "PROJ-2"]
        assert entries[0].thread_link == "https://acme.slack.com/archives/C1/p123"
        assert entries[1].thread_link is None
        assert not entries[0].is_hotfix_list

    def test_hotfix_list_with_dash_bullets(self):
        from blockwatch.detection.extractor import TicketExtractor
        extractor = TicketExtractor()
        text = "List of hotfixes:\n- PROJ-7 payment\n- PROJ-8 search"
        assert extractor.is_hotfix_list(text)
        entries = extractor.parse_blocker_entries(text)
        assert [e.ticket.key for e in entries] == ["PROJ-7", "PROJ-8"]
        assert all(e.is_hotfix_list for e in entries)

    def test_inline_blocker_list(self):
        from blockwatch.detection.extractor import TicketExtractor
        tickets = TicketExtractor().parse_blocker_list("Blockers: PROJ-10, PROJ-11")
        assert [t.key for t in tickets] == ["PROJ-10", "PROJ-11"]

    def test_not_a_list(self):
        from blockwatch.detection.extractor import TicketExtractor
        assert TicketExtractor().parse_blocker_entries("PROJ-1 is broken") == []

    @pytest.mark.parametrize("text", [
        "Not a blocker: PROJ-5 only affects staging",
        "The blocker for checkout is PROJ-5: needs a retest",
        "Blockers that are no longer blocking: PROJ-5",
    ])
    def test_prose_with_colon_is_not_a_list(self, text):
        from blockwatch.detection.extractor import TicketExtractor
        extractor = TicketExtractor()
        assert not extractor.is_blocker_list(text)
        assert extractor.parse_blocker_entries(text) == []

    def test_unbulleted_list_reads_header_line_only(self):
        from blockwatch.detection.extractor import TicketExtractor
        text = "Blockers: PROJ-10\nPROJ-11 was discussed yesterday"
        assert [t.key for t in TicketExtractor().parse_blocker_list(text)] == ["PROJ-10"]

    def test_keyword_extraction(self):
        from blockwatch.detection.extractor import TicketExtractor
        extractor = TicketExtractor()
        assert extractor.extract_blocking_keywords("PROJ-1 is a release blocker")[0] == "release blocker"
        assert extractor.extract_resolution_keywords("fixed and deployed") == ["fixed"]
