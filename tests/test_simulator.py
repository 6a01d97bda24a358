"""Tests for the attack simulator scenarios."""

from __future__ import annotations

import pytest

from simulator.simulate import SCENARIOS, parse_args, run


@pytest.mark.asyncio
async def test_sql_injection_scenario(tmp_path):
    result = await run(["sql_injection"], str(tmp_path / "sim.db"), 0)
    report = result["report"]
    assert report["total_events"] == 3
    assert report["unique_ips"] == 1
    assert len(report["high_risk_events"]) == 3
    assert [a["tags"]["alert_type"] for a in result["alerts"]] == ["SUSPICIOUS_IP"]


@pytest.mark.asyncio
async def test_command_injection_scenario_is_critical(tmp_path):
    result = await run(["command_injection"], str(tmp_path / "sim.db"), 0)
    levels = {e["risk_level"] for e in result["report"]["high_risk_events"]}
    assert levels == {"CRITICAL"}


@pytest.mark.asyncio
async def test_brute_force_repeats_ip_alert(tmp_path):
    result = await run(["brute_force"], str(tmp_path / "sim.db"), 0)
    assert result["report"]["total_events"] == 6
    assert result["report"]["high_risk_events"] == []
    # counts 3, 4, 5 and 6 are all at or above the threshold
    assert len(result["alerts"]) == 4


@pytest.mark.asyncio
async def test_every_scenario_records_events(tmp_path):
    result = await run(list(SCENARIOS), str(tmp_path / "sim.db"), 0)
    breakdown = {row["event_type"] for row in result["report"]["event_breakdown"]}
    assert breakdown == {
        "SQL_INJECTION_ATTEMPT",
        "XSS_ATTEMPT",
        "PATH_TRAVERSAL_ATTEMPT",
        "COMMAND_INJECTION_ATTEMPT",
        "LOGIN_FAILURE",
    }


def test_parse_args():
    args = parse_args(["--scenario", "xss", "--delay", "0"])
    assert args.scenario == "xss"
    assert args.delay == 0.0
    assert args.db is None


def test_parse_args_rejects_unknown_scenario():
    with pytest.raises(SystemExit):
        parse_args(["--scenario", "ddos"])
