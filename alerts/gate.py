"""Anti-noise gate: per (entity, rule) debounce / sustain state machine.

States:

    idle     condition false, nothing pending
    pending  condition became true, waiting out the sustain window
    armed    sustain satisfied, eligible to fire once debounce allows it
    fired    fired during the current true-streak; will not fire again until
             the condition goes false and a new streak starts

A hard mute forces the condition false for the tick. Ticks are keyed by the
snapshot time, never by wall clock, and a tick older than the last one seen
for a state is ignored so it cannot rewind sustain or debounce anchors.

The gate never touches storage. Callers act on the returned GateDecision.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Optional
from datetime import datetime

from models.enums import GateStatus

logger = logging.getLogger("tokenhealth.alerts.gate")


@dataclass
class GateState:
    status: GateStatus = GateStatus.IDLE
    condition: bool = False
    sustain_started_at: Optional[datetime] = None
    last_fired_at: Optional[datetime] = None
    fired: bool = False
    last_seen_at: Optional[datetime] = None


@dataclass(frozen=True)
class GateDecision:
    fire: bool
    status: GateStatus
    reason: str
    resolved: bool = False


def step(state, condition, muted, now, sustain, debounce):
    """Advance one state by one tick. Mutates state, returns the decision."""
    if state.last_seen_at is not None and now < state.last_seen_at:
        return GateDecision(False, state.status, "stale")
    state.last_seen_at = now

    if not condition or muted:
        resolved = state.fired
        state.status = GateStatus.IDLE
        state.condition = False
        state.sustain_started_at = None
        state.fired = False
        return GateDecision(False, GateStatus.IDLE, "muted" if condition else "idle", resolved=resolved)

    if state.status == GateStatus.IDLE:
        state.condition = True
        state.sustain_started_at = now
        state.status = GateStatus.PENDING

    if state.status == GateStatus.PENDING:
        if now - state.sustain_started_at < sustain:
            return GateDecision(False, GateStatus.PENDING, "sustaining")
        state.status = GateStatus.ARMED

    if state.status == GateStatus.FIRED:
        return GateDecision(False, GateStatus.FIRED, "already_fired")

    if state.last_fired_at is not None and now - state.last_fired_at < debounce:
        return GateDecision(False, GateStatus.ARMED, "debounced")

    state.last_fired_at = now
    state.fired = True
    state.status = GateStatus.FIRED
    return GateDecision(True, GateStatus.FIRED, "fired")


class AntiNoiseGate:
    """Owns every GateState, keyed by (entity_id, rule_id).

    Keys use the rule id rather than the rule object, so reloading the
    catalog keeps in-flight state. Callers must serialize ticks for the same
    entity; distinct entities can be evaluated in parallel.
    """

    def __init__(self):
        self._states = {}
        self._lock = threading.Lock()

    def state_for(self, entity_id, rule_id):
        key = (entity_id, rule_id)
        state = self._states.get(key)
        if state is None:
            with self._lock:
                state = self._states.setdefault(key, GateState())
        return state

    def status_of(self, entity_id, rule_id):
        state = self._states.get((entity_id, rule_id))
        return state.status if state else GateStatus.IDLE

    def evaluate(self, entity_id, rule, condition, muted, now):
        state = self.state_for(entity_id, rule.id)
        decision = step(state, condition, muted, now, rule.sustain, rule.debounce)
        if decision.reason == "stale":
            logger.warning(
                f"Ignoring out-of-order tick for {entity_id}/{rule.id}: "
                f"{now.isoformat()} < {state.last_seen_at.isoformat()}"
            )
        else:
            logger.debug(f"{entity_id}/{rule.id}: {decision.reason} -> {decision.status.value}")
        return decision

    def seed(self, entity_id, rule_id, last_fired_at):
        """Restore a persisted debounce anchor. Never moves an anchor backwards."""
        state = self.state_for(entity_id, rule_id)
        if state.last_fired_at is None or last_fired_at > state.last_fired_at:
            state.last_fired_at = last_fired_at

    def evict(self, now, max_idle):
        """Drop states not touched within max_idle of now. Returns the number dropped."""
        with self._lock:
            stale = []
            for key, st in self._states.items():
                touched = st.last_seen_at or st.last_fired_at
                if touched is None or now - touched > max_idle:
                    stale.append(key)
            for key in stale:
                del self._states[key]
        if stale:
            logger.info(f"Evicted {len(stale)} idle gate states")
        return len(stale)

    def __len__(self):
        return len(self._states)
