"""Operational health derived from the workspace status.

Pure: environment flags come in as arguments, the clock can be injected.
"""

from __future__ import annotations

from datetime import datetime, timezone

from .models import OperationalState, WorkspaceStatus

DEACON_ROLE = "health-check"


def derive_operational_state(
    status: WorkspaceStatus | None,
    *,
    degraded_mode: bool = False,
    patrol_muted: bool = False,
    now: datetime | None = None,
) -> OperationalState:
    now = now or datetime.now(timezone.utc)
    state = OperationalState()

    if degraded_mode:
        state.degraded_mode = True
        state.degraded_reason = "tmux unavailable"
        state.degraded_action = "run 'gt boot' with tmux installed"
        state.issues.append("tmux unavailable - running in degraded mode")

    if patrol_muted:
        state.patrol_muted = True

    if status is None:
        return state

    deacon_found = False
    for agent in status.agents:
        if agent.role != DEACON_ROLE:
            continue
        deacon_found = True
        if agent.running:
            state.last_deacon_heartbeat = now
        else:
            state.watchdog_healthy = False
            state.watchdog_reason = "deacon stopped"
            state.watchdog_action = "run 'gt deacon start'"
            state.issues.append("deacon not running - watchdog disabled")

    if not deacon_found:
        state.watchdog_healthy = False
        state.watchdog_reason = "deacon not registered"
        state.watchdog_action = "run 'gt boot' to initialize"
        state.issues.append("deacon not found - run 'gt boot' to initialize")

    for pool in status.pools:
        for agent in pool.agents:
            if not agent.running:
                continue
            if agent.role == "witness":
                state.last_witness_heartbeat[pool.name] = now
            elif agent.role == "refinery":
                state.last_refinery_heartbeat[pool.name] = now

    return state
