import pytest


class ConstantRng:
    """Returns the same draw forever. 0.0 forces success, 0.999 forces failure."""

    def __init__(self, value: float):
        self.value = value
        self.calls = 0

    def random(self) -> float:
        self.calls += 1
        return self.value


class ScriptedRng:
    """Replays a fixed sequence of draws, then repeats the last one."""

    def __init__(self, draws):
        self.draws = list(draws)
        self.calls = 0

    def random(self) -> float:
        idx = min(self.calls, len(self.draws) - 1)
        self.calls += 1
        return self.draws[idx]


@pytest.fixture
def always_succeed():
    return ConstantRng(0.0)


@pytest.fixture
def always_fail():
    return ConstantRng(0.999)


@pytest.fixture
def scripted_rng():
    return ScriptedRng
