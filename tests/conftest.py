import pytest

from aad_graph import Tape, TapeConfig


@pytest.fixture
def tape():
    return Tape()


@pytest.fixture
def plain_tape():
    """Tape with edge contraction disabled (graph mirrors the recorded ops)."""
    return Tape(TapeConfig(contract_edges=False))
