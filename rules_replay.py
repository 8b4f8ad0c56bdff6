#!/usr/bin/env python3
"""
Offline rule replay.

Registers rules against simulated devices, feeds sensor snapshots through the
rule engine one by one, and logs every device command that would be sent.

Usage:
    python rules_replay.py --rule "if temp > 25 in living room then ac on cool 23" \
                           --snapshots snapshots.jsonl
    python rules_replay.py --rules-file rules.txt < snapshots.jsonl
    python rules_replay.py --check "if motion in kitchen then light on"

Snapshots are JSON objects, one per line:
    {"temp": {"living room": 26}, "motion": {"kitchen": true}}
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from homerules.domain.actions import ActionRegistry
from homerules.domain.errors import ParseError
from homerules.domain.parser import parse_rule
from homerules.domain.rule_manager import RuleManager
from homerules.drivers.device_sim import SimulatedDeviceControl
from homerules.drivers.directory import StaticDeviceDirectory, load_home_config


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------

def read_rules(args: argparse.Namespace) -> list[str]:
    rules = list(args.rule or [])
    if args.rules_file:
        for line in Path(args.rules_file).read_text().splitlines():
            line = line.strip()
            if line and not line.startswith("#"):
                rules.append(line)
    return rules


def read_snapshots(path: str | None) -> list[dict]:
    stream = Path(path).read_text().splitlines() if path else sys.stdin.read().splitlines()
    out = []
    for n, line in enumerate(stream, start=1):
        line = line.strip()
        if not line:
            continue
        try:
            out.append(json.loads(line))
        except json.JSONDecodeError as e:
            raise SystemExit(f"snapshot line {n}: {e}")
    return out


# ---------------------------------------------------------------------------
# Replay
# ---------------------------------------------------------------------------

async def replay(
    rules: list[str],
    snapshots: list[dict],
    home_config: str,
    control: SimulatedDeviceControl | None = None,
) -> int:
    log = logging.getLogger("replay")
    control = control or SimulatedDeviceControl()
    manager = RuleManager(
        directory=StaticDeviceDirectory(load_home_config(home_config)),
        control=control,
        action_registry=ActionRegistry(),
    )

    failed = 0
    for text in rules:
        try:
            handle = manager.register(text)
            log.info("rule %s: %s", handle.rule_id, text)
        except ParseError as e:
            failed += 1
            log.error("rule rejected (%s): %s -> %s", type(e).__name__, text, e)

    log.info("  Rules:  %d registered, %d rejected, %d event(s)",
             len(manager.rules()), failed, len(manager.events()))

    for n, snapshot in enumerate(snapshots, start=1):
        before = len(control.commands)
        outcomes = await manager.process_sensor_data(snapshot)
        sent = control.commands[before:]
        log.info("[%d] %s -> %d command(s)", n, json.dumps(snapshot), len(sent))
        for device_id, state in sent:
            log.info("      → %s %s", device_id, state.as_payload())
        for o in outcomes:
            if not o.ok:
                log.warning("      ✗ %s: %s", o.rule_id, o.error)

    return 1 if failed else 0


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def main() -> None:
    p = argparse.ArgumentParser(description="Replay sensor snapshots through automation rules")

    p.add_argument("--rule", action="append", help="Rule text (repeatable)")
    p.add_argument("--rules-file", help="File with one rule per line ('#' comments allowed)")
    p.add_argument("--snapshots", help="JSON-lines snapshot file (default: stdin)")
    p.add_argument("--home-config", default="", help="Room/device map JSON (default: bundled)")
    p.add_argument("--check", metavar="RULE", help="Only parse RULE and print the result")

    p.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    args = p.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)-5s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if args.check:
        try:
            parsed = parse_rule(args.check)
        except ParseError as e:
            print(f"{type(e).__name__}: {e}")
            raise SystemExit(1)
        print(f"condition: {parsed.condition.describe()}")
        print(f"action:    {parsed.action.describe()}")
        return

    rules = read_rules(args)
    if not rules:
        p.error("no rules given (use --rule or --rules-file)")

    raise SystemExit(asyncio.run(replay(rules, read_snapshots(args.snapshots), args.home_config)))


if __name__ == "__main__":
    main()
