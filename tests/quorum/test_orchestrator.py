# tests/quorum/test_orchestrator.py

import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from sq_core.consensus.consensus_errors import RoundError
from sq_core.consensus.datatypes import SLOT_SOURCE_OVERRIDE, SLOT_SOURCE_QUORUM
from sq_core.consensus.fanout import FanOutExecutor
from sq_core.consensus.orchestrator import (
    RoundOrchestrator,
    RoundState,
    format_block_time,
    format_classes,
)
from tests.core.mock_client import FakeNodeClient, make_block

HASH_A = "9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin"
HASH_B = "CuieVDEDtLo7FypA9SbLM9saXFdb1dsshEkyErMqkRQq"


class TestFullPass:

    async def test_quorum_slot_chosen(self, endpoints, agreeing_client):
        orchestrator = RoundOrchestrator(endpoints, agreeing_client)

        report = await orchestrator.run()

        assert [c.as_row() for c in report.slot_round.classes] == [
            {"key": 100, "n": 4, "t": 5},
            {"key": 99, "n": 1, "t": 5},
        ]
        assert report.chosen_slot == 100
        assert report.slot_source == SLOT_SOURCE_QUORUM
        assert report.has_quorum
        assert {c[2] for c in agreeing_client.calls_for("getBlock")} == {100}
        assert report.block_round.variants == 1
        assert all(m.matches for m in report.block_round.winning_matches)
        assert orchestrator.state is RoundState.BLOCK_ROUND

    async def test_override_wins_over_quorum(self, endpoints, agreeing_client):
        orchestrator = RoundOrchestrator(endpoints, agreeing_client, slot_override=50)

        report = await orchestrator.run()

        assert report.chosen_slot == 50
        assert report.slot_source == SLOT_SOURCE_OVERRIDE
        assert len(agreeing_client.calls_for("getSlot")) == len(endpoints)
        assert {c[2] for c in agreeing_client.calls_for("getBlock")} == {50}
        assert report.block_round.slot == 50

    async def test_override_runs_block_round_without_slot_answers(self, endpoints):
        block = make_block(HASH_A)
        client = FakeNodeClient(blocks={e: block for e in endpoints})

        report = await RoundOrchestrator(endpoints, client, slot_override=50).run()

        assert report.slot_round.classes == []
        assert report.chosen_slot == 50
        assert report.block_round.winner.n == len(endpoints)

    async def test_zero_override_means_quorum(self, endpoints, agreeing_client):
        report = await RoundOrchestrator(endpoints, agreeing_client, slot_override=0).run()
        assert report.slot_source == SLOT_SOURCE_QUORUM
        assert report.chosen_slot == 100

    async def test_all_endpoints_failing_is_no_quorum(self, caplog):
        endpoints = ["http://a", "http://b", "http://c"]
        client = FakeNodeClient(failing=endpoints)
        orchestrator = RoundOrchestrator(endpoints, client)

        with caplog.at_level(logging.INFO):
            report = await orchestrator.run()

        assert report.slot_round.classes == []
        assert report.slot_round.failed == endpoints
        assert not report.has_quorum
        assert report.block_round is None
        assert client.calls_for("getBlock") == []
        assert orchestrator.state is RoundState.SLOT_ROUND
        assert "No quorum" in caplog.text

    async def test_log_lines(self, endpoints, agreeing_client, caplog):
        with caplog.at_level(logging.INFO):
            await RoundOrchestrator(endpoints, agreeing_client).run()

        assert "Current slots: [{100: N=4 T=5}, {99: N=1 T=5}]" in caplog.text
        assert "Using quorum slot: 100" in caplog.text
        assert "1 data version(s) for slot 100" in caplog.text
        assert f"had blockhash {HASH_A}" in caplog.text
        assert "content match: True" in caplog.text

    async def test_metrics_updated(self, endpoints, agreeing_client):
        metrics = MagicMock()
        orchestrator = RoundOrchestrator(
            endpoints, agreeing_client, executor=FanOutExecutor(metrics=metrics), metrics=metrics
        )

        await orchestrator.run()

        metrics.update_chosen_slot.assert_called_once_with(100)
        metrics.update_content_mismatches.assert_called_once_with(0)
        rounds = [c.args[0] for c in metrics.record_round.call_args_list]
        assert rounds == ["slot", "block"]


class TestBlockRound:

    async def test_variants_and_content_verdicts(self):
        endpoints = ["http://a", "http://b", "http://c", "http://d"]
        block_a = make_block(HASH_A)
        tampered_a = make_block(HASH_A, payloads=[b"something else"])
        block_b = make_block(HASH_B, parent_slot=98)
        client = FakeNodeClient(
            blocks={
                "http://a": block_a,
                "http://b": tampered_a,
                "http://c": block_b,
            }
        )

        outcome = await RoundOrchestrator(endpoints, client).block_round(100)

        assert outcome.variants == 2
        assert outcome.winner.key == HASH_A
        assert outcome.failed == ["http://d"]
        assert [(m.endpoint, m.matches) for m in outcome.content_matches[HASH_A]] == [
            ("http://a", True),
            ("http://b", False),
        ]
        assert [m.matches for m in outcome.content_matches[HASH_B]] == [True]
        assert outcome.blocks["http://c"] is block_b

    async def test_unexpected_failure_wrapped(self, endpoints):
        executor = MagicMock(spec=FanOutExecutor)
        executor.run = AsyncMock(side_effect=RuntimeError("event loop gone"))
        orchestrator = RoundOrchestrator(endpoints, FakeNodeClient(), executor=executor)

        with pytest.raises(RoundError, match="block round"):
            await orchestrator.block_round(1)


async def test_height_round(endpoints):
    heights = {e: 90 for e in endpoints}
    heights[endpoints[0]] = 89
    client = FakeNodeClient(heights=heights, failing=[endpoints[1]])

    outcome = await RoundOrchestrator(endpoints, client).height_round()

    assert [c.as_row() for c in outcome.classes] == [
        {"key": 90, "n": 3, "t": 5},
        {"key": 89, "n": 1, "t": 5},
    ]
    assert outcome.failed == [endpoints[1]]


def test_choose_slot_without_majority_still_picks_top(caplog):
    orchestrator = RoundOrchestrator(["http://a"], FakeNodeClient())
    outcome = MagicMock()
    outcome.winner.key = 7
    outcome.winner.n = 1
    outcome.winner.total = 3
    outcome.winner.has_majority = False

    with caplog.at_level(logging.WARNING):
        assert orchestrator.choose_slot(outcome) == (7, SLOT_SOURCE_QUORUM)
    assert "only 1/3" in caplog.text


def test_format_classes_empty():
    assert format_classes([]) == "[]"


def test_format_block_time():
    assert format_block_time(None) == "unknown"
    assert format_block_time(0) == "1970-01-01T00:00:00+00:00"
    assert format_block_time(10**18) == f"{10**18} (out of range)"


async def test_out_of_range_block_time_does_not_abort_round(caplog):
    endpoints = ["http://a", "http://b"]
    client = FakeNodeClient(
        blocks={
            "http://a": make_block(HASH_A, block_time=10**18),
            "http://b": make_block(HASH_A),
        }
    )

    with caplog.at_level(logging.INFO):
        outcome = await RoundOrchestrator(endpoints, client).block_round(5)

    assert outcome.winner.n == 2
    assert [m.differences for m in outcome.content_matches[HASH_A]] == [[], ["block_time"]]
    assert "(out of range)" in caplog.text
