from __future__ import annotations

from hypothesis import given, settings
from hypothesis import strategies as st

from trace_console.engine.grouping import (
    display_tool_name,
    group_events,
    in_progress_group,
    summarize_tool_call,
    summarize_tool_result,
)
from trace_console.schema.events import ToolCallDetail
from tests.utils.snapshot_helpers import build_event


def test_groups_split_on_agent_change_only() -> None:
    events = [
        build_event("status", "triage", "a1"),
        build_event("thinking", "triage", "a2"),
        build_event("status", "research", "b1"),
        build_event("insight", "triage", "a3"),
    ]
    groups = group_events(events)
    assert [(g.agent, [e.message for e in g.events]) for g in groups] == [
        ("triage", ["a1", "a2"]),
        ("research", ["b1"]),
        ("triage", ["a3"]),
    ]


def test_empty_feed_has_no_groups() -> None:
    assert group_events([]) == []
    assert in_progress_group([]) is None


def test_in_progress_group_is_latest_without_complete() -> None:
    groups = group_events(
        [
            build_event("status", "triage"),
            build_event("complete", "triage"),
            build_event("status", "research"),
            build_event("thinking", "research"),
        ]
    )
    assert groups[0].is_complete
    current = in_progress_group(groups)
    assert current is not None
    assert current.agent == "research"

    finished = group_events([build_event("status", "quality"), build_event("complete", "quality")])
    assert in_progress_group(finished) is None


@settings(database=None, max_examples=50)
@given(st.lists(st.sampled_from(["triage", "research", "decision"]), max_size=30))
def test_grouping_preserves_every_event_in_order(agents: list[str]) -> None:
    events = [build_event("thinking", agent, str(i)) for i, agent in enumerate(agents)]
    groups = group_events(events)
    flattened = [event for group in groups for event in group.events]
    assert flattened == events
    assert all(a.agent != b.agent for a, b in zip(groups, groups[1:]))


def test_tool_names_lose_platform_prefixes() -> None:
    assert display_tool_name("supportgenius.lookup_order") == "lookup order"
    assert display_tool_name("platform.core.search_knowledge") == "search knowledge"
    assert display_tool_name("custom_tool") == "custom tool"


def test_tool_call_summary_previews_two_params() -> None:
    detail = ToolCallDetail(
        tool_name="supportgenius.search_tickets",
        params={"query": "x" * 50, "limit": 5, "sort": "recent"},
    )
    assert summarize_tool_call(detail) == (
        f"search tickets (query: {'x' * 30}, limit: 5, ...)"
    )
    assert summarize_tool_call(ToolCallDetail(tool_name="ping")) == "ping"


def test_tool_result_summary_counts_records_and_collapses_large_payloads() -> None:
    small = summarize_tool_result({"count": 3, "rows": [1, 2, 3]})
    assert small.label == "3 records"
    assert not small.collapsed

    single = summarize_tool_result({"count": 1})
    assert single.label == "1 record"

    large = summarize_tool_result({"rows": ["y" * 40 for _ in range(10)]})
    assert large.collapsed
    assert large.label.endswith("chars")
