"""Tests for the calibration MCP tools."""

from __future__ import annotations

import asyncio
import json

import pytest
from fastmcp import Client, FastMCP

from calib.core.server.app import create_app
from calib.domains.calibration.tools.calibration_tools import register_calibration_tools
from helpers import SLEEP_5_6H, FixedClock, make_answers, run_async


def _payload(result) -> dict:
    blocks = getattr(result, "content", result)
    return json.loads(blocks[0].text)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def client(calibration_repository, audit_logger, clock):
    mcp = create_app(
        repository_override=calibration_repository,
        audit_logger_override=audit_logger,
        clock_override=clock,
    )
    return Client(mcp)


def _call(client, tool: str, args: dict) -> dict:
    async def _go():
        async with client:
            return _payload(await client.call_tool(tool, args))
    return run_async(_go())


class TestQuestions:
    def test_base_questions(self, client):
        payload = _call(client, "get_calibration_questions", {"user_id": "user-1"})
        assert payload["status"] == "ok"
        assert [q["id"] for q in payload["questions"]][:2] == ["q_anxiety_1", "q_anxiety_2"]
        assert len(payload["questions"]) == 5

    def test_goal_adds_question(self, client):
        saved = _call(client, "set_wellness_goal", {"user_id": "user-1", "category": "Fitness"})
        assert saved["status"] == "saved"
        assert saved["category"] == "exercise"
        payload = _call(client, "get_calibration_questions", {"user_id": "user-1"})
        assert payload["questions"][-1]["id"] == "exercise_done"

    def test_unknown_goal_rejected(self, client):
        payload = _call(client, "set_wellness_goal", {"user_id": "user-1", "category": "astrology"})
        assert payload["status"] == "error"
        assert "sleep" in payload["valid_categories"]


class TestSubmit:
    def test_submit_scores_and_saves(self, client, calibration_repository):
        payload = _call(client, "submit_daily_calibration", {
            "user_id": "user-1",
            "answers": make_answers(1, 1, SLEEP_5_6H, 1, 1),
        })
        assert payload["status"] == "saved"
        assert payload["daily_index"] == 6
        assert payload["cadence"] == "daily"
        assert payload["saved_to_cloud"] is True
        assert calibration_repository.count_responses("user-1") == 5
        assert calibration_repository.count_wellness_logs("user-1") == 1

    def test_empty_answers_rejected(self, client):
        payload = _call(client, "submit_daily_calibration", {"user_id": "user-1", "answers": {}})
        assert payload["status"] == "error"

    def test_high_anxiety_audited(self, client, audit_logger):
        payload = _call(client, "submit_daily_calibration", {
            "user_id": "user-1",
            "answers": make_answers(2, 2, phq9_q9=1),
        })
        assert payload["trigger_full_scale"] == "GAD7"
        assert payload["safety_triggered"] is True
        assert audit_logger.count_events(action="scale_trigger", user_id="user-1") == 1
        assert audit_logger.count_events(action="safety_event", user_id="user-1") == 1

    def test_tool_call_logged_without_answers(self, client, audit_logger):
        _call(client, "submit_daily_calibration", {
            "user_id": "user-1",
            "answers": make_answers(phq9_q9=0),
        })
        [event] = audit_logger.get_events(action="tool_invocation")
        assert event["tool_name"] == "submit_daily_calibration"
        assert len(event["tool_input_hash"]) == 64
        assert "phq9_q9" not in json.dumps(event)


class TestConcurrentSubmit:
    def test_second_submission_for_same_user_rejected(
        self, fake_store, calibration_repository, clock, question_bank
    ):
        mcp = FastMCP("calibration-test")
        register_calibration_tools(mcp, fake_store, calibration_repository, clock, question_bank)

        async def _go():
            tool = await mcp.get_tool("submit_daily_calibration")
            return await asyncio.gather(
                tool.fn(None, "user-1", make_answers()),
                tool.fn(None, "user-1", make_answers()),
            )

        first, second = (json.loads(raw) for raw in run_async(_go()))
        assert first["status"] == "saved"
        assert second["status"] == "error"
        assert "already in progress" in second["message"]
        assert fake_store.calls.count("save_responses") == 1
        assert fake_store.calls.count("commit_cycle") == 1

    def test_other_users_not_blocked(self, fake_store, calibration_repository, clock, question_bank):
        mcp = FastMCP("calibration-test")
        register_calibration_tools(mcp, fake_store, calibration_repository, clock, question_bank)

        async def _go():
            tool = await mcp.get_tool("submit_daily_calibration")
            return await asyncio.gather(
                tool.fn(None, "user-1", make_answers()),
                tool.fn(None, "user-2", make_answers()),
            )

        payloads = [json.loads(raw) for raw in run_async(_go())]
        assert [p["status"] for p in payloads] == ["saved", "saved"]
        assert fake_store.calls.count("save_responses") == 2


class TestSchedule:
    def test_status_after_submission(self, client):
        _call(client, "submit_daily_calibration", {"user_id": "user-1", "answers": make_answers()})
        status = _call(client, "calibration_status", {"user_id": "user-1"})
        assert status["cadence"] == "daily"
        assert status["should_calibrate_today"] is False
        assert status["next_eligible_date"] == "2026-03-11"

    def test_force_status(self, client):
        _call(client, "submit_daily_calibration", {"user_id": "user-1", "answers": make_answers()})
        status = _call(client, "calibration_status", {"user_id": "user-1", "force": True})
        assert status["should_calibrate_today"] is True

    def test_reset_frequency(self, client, calibration_repository, audit_logger):
        calibration_repository.save_cycle(
            "user-1", streak=5, calibrated_at="2026-03-09T09:00:00+00:00"
        )
        payload = _call(client, "reset_calibration_frequency", {"user_id": "user-1"})
        assert payload["cadence"] == "daily"
        assert payload["reason"] == "user_choice"
        assert calibration_repository.get_profile("user-1").daily_stability_streak == 0
        assert audit_logger.count_events(action="frequency_change") == 1


class TestDeletion:
    def test_requires_confirmation(self, client, calibration_repository):
        calibration_repository.upsert_responses("user-1", "2026-03-10", {"stress": 1})
        payload = _call(client, "delete_calibration_history", {"user_id": "user-1"})
        assert payload["status"] == "cancelled"
        assert calibration_repository.count_responses("user-1") == 1

    def test_deletes_and_audits(self, client, calibration_repository, audit_logger):
        calibration_repository.upsert_responses("user-1", "2026-03-10", {"stress": 1})
        payload = _call(client, "delete_calibration_history", {
            "user_id": "user-1",
            "confirm": "DELETE_ALL",
        })
        assert payload["status"] == "deleted"
        assert payload["responses_deleted"] == 1
        assert calibration_repository.count_responses("user-1") == 0
        assert audit_logger.count_events(action="data_delete") == 1


class TestAuditSummary:
    def test_counts(self, client):
        _call(client, "submit_daily_calibration", {
            "user_id": "user-1",
            "answers": make_answers(3, 0),
        })
        summary = _call(client, "audit_summary", {"user_id": "user-1"})
        assert summary["status"] == "ok"
        assert summary["scale_triggers"] == 1
        assert summary["safety_events"] == 0
        assert summary["frequency_changes"] == 1
        assert summary["total_events"] >= 3
