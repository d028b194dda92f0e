"""Tests for nightly record pruning."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from saarthi.tasks.cleanup import prune_old_records

pytestmark = pytest.mark.asyncio

NOW = datetime(2026, 3, 1, 3, 30, tzinfo=timezone.utc)


def _result(rowcount: int) -> MagicMock:
    result = MagicMock()
    result.rowcount = rowcount
    return result


async def test_deletes_from_each_table(db):
    db.execute.side_effect = [_result(12), _result(3), _result(40)]

    counts = await prune_old_records(db, trace_days=30, conversation_days=90, now=NOW)

    assert counts == {"function_traces": 12, "check_ins": 3, "medication_reminders": 40}
    tables = [call.args[0].table.name for call in db.execute.await_args_list]
    assert tables == ["function_traces", "check_ins", "medication_reminders"]
    db.commit.assert_not_awaited()


async def test_only_finished_conversations_are_pruned(db):
    db.execute.side_effect = [_result(0), _result(0), _result(0)]

    await prune_old_records(db, trace_days=30, conversation_days=90, now=NOW)

    _, check_ins, reminders = (call.args[0] for call in db.execute.await_args_list)
    check_in_sql = str(check_ins.compile())
    assert "check_ins.reported IS" in check_in_sql
    assert "check_ins.is_active IS" in check_in_sql
    assert "medication_reminders.responded IS" in str(reminders.compile())


async def test_cutoffs_follow_retention(db):
    db.execute.side_effect = [_result(0), _result(0), _result(0)]

    await prune_old_records(db, trace_days=30, conversation_days=90, now=NOW)

    traces, check_ins, _ = (call.args[0] for call in db.execute.await_args_list)
    trace_params = traces.compile().params
    check_in_params = check_ins.compile().params
    assert datetime(2026, 1, 30, 3, 30, tzinfo=timezone.utc) in trace_params.values()
    assert datetime(2025, 12, 1, 3, 30, tzinfo=timezone.utc) in check_in_params.values()
