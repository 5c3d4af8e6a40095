"""Tests for FlowGraph validation, lookups and hand-off routing."""
import logging

import pytest

from paxsim.config import ConfigError
from paxsim.entities import AgentState, StageKind
from paxsim.network import FlowGraph, UnroutableAgent, build_flow, parse_order
from paxsim.queues import Stage

CI, SEC, BRD, NONE = StageKind.CHECK_IN, StageKind.SECURITY, StageKind.BOARDING, StageKind.NONE


class TestValidation:

    def test_linear_chain_from_order(self):
        flow = FlowGraph.from_order([CI, SEC, BRD])
        assert flow.head is CI
        assert flow.order == [CI, SEC, BRD]
        assert flow.describe() == "check_in -> security -> boarding -> none"

    def test_cycle_is_reported_with_stage_name(self):
        with pytest.raises(ConfigError, match="cyclic at stage 'check_in'"):
            FlowGraph({CI: SEC, SEC: CI}, CI)

    def test_repeated_stage_in_order_is_a_cycle(self):
        with pytest.raises(ConfigError, match="cycle: 'security'"):
            FlowGraph.from_order([CI, SEC, SEC])

    def test_unreachable_stage_is_reported(self):
        with pytest.raises(ConfigError, match="unreachable from 'check_in': security, boarding"):
            FlowGraph({CI: NONE, SEC: BRD, BRD: NONE}, CI)

    def test_sentinel_cannot_head_or_have_successor(self):
        with pytest.raises(ConfigError):
            FlowGraph({}, NONE)
        with pytest.raises(ConfigError):
            FlowGraph({CI: NONE, NONE: SEC}, CI)

    def test_empty_order_rejected(self):
        with pytest.raises(ConfigError):
            FlowGraph.from_order([])

    def test_parse_order_rejects_unknown_and_sentinel(self):
        assert parse_order(["check_in", "boarding"]) == [CI, BRD]
        with pytest.raises(ConfigError, match="lounge"):
            parse_order(["check_in", "lounge"])
        with pytest.raises(ConfigError, match="sentinel"):
            parse_order(["none"])


class TestLookups:

    def test_next_returns_successor_or_sentinel(self):
        flow = FlowGraph.from_order([CI, SEC])
        assert flow.next(CI) is SEC
        assert flow.next(SEC) is NONE
        assert flow.next(BRD) is NONE

    def test_registry_and_missing_stages(self):
        flow = FlowGraph.from_order([CI, SEC, BRD])
        st = Stage(CI)
        flow.register(st)
        assert flow.stage_instance(CI) is st
        assert flow.stage_instance(SEC) is None
        assert flow.missing_stages() == [SEC, BRD]
        assert st.on_finished == flow.on_agent_finished

    def test_build_flow_registers_given_stages(self):
        stages = {CI: Stage(CI), SEC: Stage(SEC)}
        flow = build_flow(["check_in", "security"], stages)
        assert flow.missing_stages() == []


class TestRouting:

    def _wire(self, *kinds):
        flow = FlowGraph.from_order(kinds)
        stages = {k: Stage(k) for k in kinds}
        for st in stages.values():
            flow.register(st)
        return flow, stages

    def test_finished_passenger_moves_to_next_queue(self, env, make_passenger):
        flow, stages = self._wire(CI, SEC)
        p = make_passenger()
        flow.enter(env, p)
        stages[CI].admit(env)
        stages[CI].mark_done(p)
        stages[CI].sweep(env)
        assert p.current_stage is SEC
        assert p.state is AgentState.IN_QUEUE
        assert list(stages[SEC].queue) == [p]
        assert not stages[CI].holds(p)

    def test_terminal_marks_done_all_and_releases(self, env, make_passenger, recorder):
        env.listen(recorder)
        flow, stages = self._wire(CI)
        p = make_passenger()
        flow.enter(env, p)
        stages[CI].admit(env)
        stages[CI].mark_done(p)
        stages[CI].sweep(env)
        assert p.state is AgentState.DONE_ALL
        assert p.active is False
        assert len(recorder.of("done_all")) == 1

    def test_hand_off_never_shows_passenger_in_two_stages(self, env, make_passenger):
        flow, stages = self._wire(CI, SEC, BRD)
        seen = []

        def check(ev):
            if ev.kind == "enqueued":
                holders = [k for k, st in stages.items() if st.holds(ev.data["agent"])]
                seen.append(holders)

        env.listen(check)
        p = make_passenger()
        flow.enter(env, p)
        for kind in (CI, SEC, BRD):
            stages[kind].admit(env)
            stages[kind].mark_done(p)
            stages[kind].sweep(env)
        assert seen == [[CI], [SEC], [BRD]]

    def test_subscribers_notified_once_per_stage_completion(self, env, make_passenger):
        flow, stages = self._wire(CI, SEC)
        got = []
        flow.subscribe(lambda e, agent, stage: got.append((agent.pid, stage)))
        p = make_passenger(pid=4)
        flow.enter(env, p)
        for kind in (CI, SEC):
            stages[kind].admit(env)
            stages[kind].mark_done(p)
            stages[kind].sweep(env)
            stages[kind].sweep(env)
        assert got == [(4, CI), (4, SEC)]
        assert p.visits == 2

    def test_failing_subscriber_still_routes_passenger(self, env, make_passenger):
        flow, stages = self._wire(CI, SEC)

        def broken(e, agent, stage):
            raise RuntimeError("listener failed")

        flow.subscribe(broken)
        p = make_passenger()
        flow.enter(env, p)
        stages[CI].admit(env)
        stages[CI].mark_done(p)
        with pytest.raises(RuntimeError, match="listener failed"):
            stages[CI].sweep(env)
        assert not stages[CI].holds(p)
        assert list(stages[SEC].queue) == [p]
        assert p.active

    def test_failing_subscriber_at_terminal_still_releases(self, env, make_passenger):
        flow, stages = self._wire(CI)
        flow.subscribe(lambda e, agent, stage: 1 / 0)
        p = make_passenger()
        flow.enter(env, p)
        stages[CI].admit(env)
        stages[CI].mark_done(p)
        with pytest.raises(ZeroDivisionError):
            stages[CI].sweep(env)
        assert p.state is AgentState.DONE_ALL
        assert p.active is False

    def test_unregistered_next_stage_drops_passenger(self, env, make_passenger, recorder, caplog):
        env.listen(recorder)
        flow = FlowGraph.from_order([CI, SEC])
        ci = Stage(CI)
        flow.register(ci)
        p = make_passenger(pid=2)
        flow.enter(env, p)
        ci.admit(env)
        ci.mark_done(p)
        with caplog.at_level(logging.ERROR):
            ci.sweep(env)
        assert p.active is False
        assert not ci.holds(p)
        assert [e.data["stage"] for e in recorder.of("unroutable")] == [SEC]
        assert "unroutable" in caplog.text

    def test_unregistered_entry_raises_to_caller(self, env, make_passenger):
        flow = FlowGraph.from_order([CI])
        p = make_passenger()
        with pytest.raises(UnroutableAgent) as info:
            flow.enter(env, p)
        assert info.value.stage is CI
        assert info.value.agent is p
        assert p.active is False
