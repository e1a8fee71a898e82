"""Playback cursor over finished runs."""

from trust_sim.config.settings import EngineSettings
from trust_sim.engine import Playback
from trust_sim.world.simulator import LifeSimulator


class TestPlayback:
    def test_step_until_end(self):
        pb = Playback([1, 2, 3])
        assert pb.current == 1
        assert pb.step() == 2
        assert pb.step() == 3
        assert pb.step() is None
        assert pb.at_end

    def test_seek_is_clamped(self):
        pb = Playback(list(range(5)))
        assert pb.seek(10) == 4
        assert pb.seek(-3) == 0

    def test_empty_frames(self):
        pb = Playback([])
        assert pb.current is None
        assert pb.step() is None
        assert pb.play(lambda frame: None) == 0

    def test_pause_from_callback(self):
        pb = Playback(list(range(10)))
        shown = []

        def on_frame(frame):
            shown.append(frame)
            if frame == 4:
                pb.pause()

        assert pb.play(on_frame) == 4
        assert shown == [1, 2, 3, 4]
        assert pb.visited() == [0, 1, 2, 3, 4]
        # Resuming continues from the cursor.
        assert pb.play(shown.append) == 5
        assert shown[-1] == 9

    def test_delay_uses_injected_sleep(self):
        sleeps = []
        pb = Playback([0, 1, 2])
        pb.play(lambda frame: None, delay_s=0.25, sleep=sleeps.append)
        assert sleeps == [0.25, 0.25]

    def test_replays_simulator_ticks(self):
        sim = LifeSimulator(EngineSettings(num_lives=1, ticks_per_life=8), seed=2)
        ticks = list(sim.iter_ticks())
        pb = Playback(ticks)
        pb.reset()
        seen = []
        pb.play(seen.append)
        assert seen == ticks[1:]
