"""Trust arithmetic: clamping, asymmetry, karma and action policy."""

import pytest

from trust_sim.agents.policy import ActionPolicy
from trust_sim.config.settings import EngineSettings
from trust_sim.trust.system import TrustSystem, clamp
from trust_sim.utils.types import ActionKind, AgentState

from conftest import ConstantRng


def _state(trust=0.5, energy=100.0):
    return AgentState(agent_id="a", energy=energy, trust=trust)


class TestClamp:
    def test_clamp_bounds(self):
        assert clamp(1.3) == 1.0
        assert clamp(-0.2) == 0.0
        assert clamp(0.42) == 0.42
        assert clamp(5.0, 0.3, 0.6) == 0.6


class TestApplyOutcome:
    def test_success_then_failure_is_net_negative(self):
        """Loss outweighs gain for the same action."""
        cfg = EngineSettings()
        system = TrustSystem(cfg)
        action = ActionPolicy(cfg, ConstantRng(0.99)).contribute
        state = _state(trust=0.5)
        system.apply_outcome(state, action, True)
        system.apply_outcome(state, action, False)
        assert state.trust < 0.5, f"trust should drop overall, got {state.trust}"

    def test_trust_clamped_at_top_and_bottom(self):
        cfg = EngineSettings(trust_gain_rate=0.4, trust_loss_rate=0.6)
        system = TrustSystem(cfg)
        action = ActionPolicy(cfg, ConstantRng(0.99)).contribute
        high = _state(trust=0.9)
        system.apply_outcome(high, action, True)
        assert high.trust == 1.0
        low = _state(trust=0.1)
        system.apply_outcome(low, action, False)
        assert low.trust == 0.0

    def test_energy_floored_at_zero(self):
        cfg = EngineSettings(action_cost=50.0)
        system = TrustSystem(cfg)
        action = ActionPolicy(cfg, ConstantRng(0.99)).contribute
        state = _state(energy=20.0)
        system.apply_outcome(state, action, False)
        assert state.energy == 0.0


class TestSuccessProbability:
    def test_bounded_by_floor_and_ceiling(self):
        cfg = EngineSettings(noise=1.0)
        system = TrustSystem(cfg)
        action = ActionPolicy(cfg, ConstantRng(0.99)).contribute
        for trust in (0.0, 0.5, 1.0):
            for draw in (0.0, 0.5, 0.999):
                p = system.success_probability(_state(trust=trust), action, draw)
                assert 0.6 <= p <= 0.9, f"p={p} out of band for trust={trust} draw={draw}"

    def test_increases_with_trust(self):
        cfg = EngineSettings(noise=0.0, success_rate=0.7)
        system = TrustSystem(cfg)
        action = ActionPolicy(cfg, ConstantRng(0.99)).contribute
        low = system.success_probability(_state(trust=0.3), action, 0.5)
        high = system.success_probability(_state(trust=0.7), action, 0.5)
        assert high > low

    def test_decreases_with_risk_appetite(self):
        calm = EngineSettings(noise=0.0, success_rate=0.8, risk_appetite=0.0)
        bold = EngineSettings(noise=0.0, success_rate=0.8, risk_appetite=1.0)
        p_calm = TrustSystem(calm).success_probability(
            _state(), ActionPolicy(calm, ConstantRng(0.99)).contribute, 0.5
        )
        p_bold = TrustSystem(bold).success_probability(
            _state(), ActionPolicy(bold, ConstantRng(0.99)).contribute, 0.5
        )
        assert p_bold < p_calm


class TestLowTrust:
    def test_death_after_grace_ticks(self):
        cfg = EngineSettings(trust_death_threshold=0.2, trust_death_grace_ticks=3)
        system = TrustSystem(cfg)
        state = _state(trust=0.1)
        assert system.update_low_trust(state) is False
        assert system.update_low_trust(state) is False
        assert system.update_low_trust(state) is True

    def test_recovery_resets_counter(self):
        cfg = EngineSettings(trust_death_threshold=0.2, trust_death_grace_ticks=2)
        system = TrustSystem(cfg)
        state = _state(trust=0.1)
        system.update_low_trust(state)
        state.trust = 0.3
        system.update_low_trust(state)
        assert state.low_trust_ticks == 0


class TestKarma:
    def test_rebirth_between_baseline_and_previous(self):
        cfg = EngineSettings(initial_trust=0.3, karma_strength=0.5)
        start = TrustSystem(cfg).rebirth_trust(0.9)
        assert 0.3 < start < 0.9
        assert start <= cfg.karma_band_high

    @pytest.mark.parametrize("prev", [0.0, 0.05, 0.3, 0.55, 0.8, 1.0])
    def test_rebirth_stays_in_band(self, prev):
        cfg = EngineSettings(karma_strength=1.0)
        start = TrustSystem(cfg).rebirth_trust(prev)
        assert cfg.karma_band_low <= start <= cfg.karma_band_high

    def test_without_compression_band_not_applied(self):
        cfg = EngineSettings(initial_trust=0.3, karma_strength=1.0, karma_compression=False)
        assert TrustSystem(cfg).rebirth_trust(0.95) == pytest.approx(0.95)

    def test_zero_karma_resets_to_baseline(self):
        cfg = EngineSettings(initial_trust=0.4, karma_strength=0.0)
        assert TrustSystem(cfg).rebirth_trust(0.9) == pytest.approx(0.4)

    def test_rebirth_energy_bonus(self):
        cfg = EngineSettings(initial_atp=100.0, initial_trust=0.3, karma_atp_bonus=50.0)
        system = TrustSystem(cfg)
        assert system.rebirth_energy(0.5) == pytest.approx(110.0)
        assert system.rebirth_energy(0.1) == pytest.approx(100.0)


class TestActionPolicy:
    def test_no_risk_always_contributes(self):
        cfg = EngineSettings(risk_appetite=0.0)
        policy = ActionPolicy(cfg, ConstantRng(0.0))
        assert policy.select(_state()).kind == ActionKind.CONTRIBUTE

    def test_venture_when_draw_low_and_affordable(self):
        cfg = EngineSettings(risk_appetite=1.0)
        policy = ActionPolicy(cfg, ConstantRng(0.0))
        action = policy.select(_state(energy=100.0))
        assert action.kind == ActionKind.VENTURE
        assert action.trust_loss > action.trust_gain
        assert action.energy_cost == pytest.approx(cfg.action_cost * cfg.venture_cost_multiplier)

    def test_unaffordable_venture_falls_back(self):
        cfg = EngineSettings(risk_appetite=1.0, action_cost=10.0)
        policy = ActionPolicy(cfg, ConstantRng(0.0))
        assert policy.select(_state(energy=15.0)).kind == ActionKind.CONTRIBUTE

    def test_select_consumes_two_draws(self):
        rng = ConstantRng(0.5)
        policy = ActionPolicy(EngineSettings(conserve_atp_multiplier=3.0), rng)
        policy.select(_state(energy=100.0))
        policy.select(_state(energy=1.0))
        assert rng.calls == 4

    def test_conserves_when_energy_low(self):
        cfg = EngineSettings(action_cost=5.0, conserve_atp_multiplier=3.0, risk_appetite=1.0)
        policy = ActionPolicy(cfg, ConstantRng(0.0))
        action = policy.select(_state(energy=14.0))
        assert action.kind == ActionKind.CONSERVE
        assert action.energy_cost == cfg.conserve_cost
        assert action.energy_gain == 0.0
        assert policy.select(_state(energy=15.0)).kind == ActionKind.VENTURE

    def test_conserve_disabled_by_default(self):
        policy = ActionPolicy(EngineSettings(), ConstantRng(0.0))
        assert policy.conserve_probability(_state(energy=0.5)) == 0.0

    def test_experience_makes_conserving_likelier(self):
        policy = ActionPolicy(EngineSettings(conserve_atp_multiplier=3.0), ConstantRng(0.0))
        novice = policy.conserve_probability(_state(energy=1.0))
        veteran = _state(energy=1.0)
        veteran.ep_level = 0.2
        assert novice == pytest.approx(0.45)
        assert policy.conserve_probability(veteran) > novice


class TestExperience:
    def test_ep_level_grows_per_rebirth(self):
        system = TrustSystem(EngineSettings(ep_learning_rate=0.05))
        assert [system.ep_level(n) for n in (1, 2, 3)] == pytest.approx([0.0, 0.05, 0.1])

    def test_ep_disabled(self):
        system = TrustSystem(EngineSettings(ep_enabled=False))
        assert system.ep_level(5) == 0.0

    def test_experience_raises_success_probability(self):
        cfg = EngineSettings(noise=0.0, success_rate=0.7)
        system = TrustSystem(cfg)
        action = ActionPolicy(cfg, ConstantRng(0.99)).contribute
        novice = _state(trust=0.5)
        veteran = _state(trust=0.5)
        veteran.ep_level = 0.1
        assert system.success_probability(novice, action, 0.5) == pytest.approx(0.7)
        assert system.success_probability(veteran, action, 0.5) == pytest.approx(0.8)


class TestCoherence:
    def test_short_history_is_neutral(self):
        system = TrustSystem(EngineSettings())
        assert system.coherence([]) == 0.5
        assert system.coherence([0.3, 0.9]) == 0.5

    def test_steady_history_is_fully_coherent(self):
        system = TrustSystem(EngineSettings())
        assert system.coherence([0.4] * 12) == 1.0

    def test_erratic_history_loses_coherence(self):
        system = TrustSystem(EngineSettings())
        assert system.coherence([0.1, 0.9, 0.1, 0.9]) == 0.0
        assert 0.0 < system.coherence([0.40, 0.42, 0.44, 0.46]) < 1.0

    def test_only_recent_window_counts(self):
        system = TrustSystem(EngineSettings(coherence_window=10))
        assert system.coherence([0.0, 1.0] + [0.5] * 10) == 1.0

    def test_coherence_boosts_gains_and_softens_losses(self):
        cfg = EngineSettings(coherence_weight=0.2)
        system = TrustSystem(cfg)
        action = ActionPolicy(cfg, ConstantRng(0.99)).contribute
        steady, shaky = _state(trust=0.5), _state(trust=0.5)
        system.apply_outcome(steady, action, True, coherence=1.0)
        system.apply_outcome(shaky, action, True, coherence=0.0)
        assert steady.trust - 0.5 == pytest.approx(cfg.trust_gain_rate * 1.2)
        assert shaky.trust - 0.5 == pytest.approx(cfg.trust_gain_rate)

        steady, shaky = _state(trust=0.5), _state(trust=0.5)
        system.apply_outcome(steady, action, False, coherence=1.0)
        system.apply_outcome(shaky, action, False, coherence=0.0)
        assert 0.5 - steady.trust == pytest.approx(cfg.trust_loss_rate * 0.9)
        assert 0.5 - shaky.trust == pytest.approx(cfg.trust_loss_rate)

    def test_loss_still_outweighs_gain_at_full_coherence(self):
        cfg = EngineSettings()
        system = TrustSystem(cfg)
        action = ActionPolicy(cfg, ConstantRng(0.99)).contribute
        state = _state(trust=0.5)
        system.apply_outcome(state, action, True, coherence=1.0)
        system.apply_outcome(state, action, False, coherence=1.0)
        assert state.trust < 0.5
