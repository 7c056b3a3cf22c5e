"""Tests for gate module."""

from pathlib import Path

from newsclipper.config import HandlerKind
from newsclipper.gate import AllowAllGate, AllowListGate, SeatLimitGate

KINDS = {"slashdot": HandlerKind.ACQUISITION, "cnn": HandlerKind.ACQUISITION, "limit": HandlerKind.FILTER}


def kind_of(name):
    return KINDS[name]


def seats(*names):
    return lambda: [Path(f"/handlers/Acquisition/{name}.py") for name in names]


class TestAllowGates:
    """Tests for AllowAllGate and AllowListGate."""

    def test_allow_all(self):
        assert AllowAllGate().check("anything", kind_of) is None

    def test_allow_list(self):
        """Test only listed acquisition handlers pass."""
        gate = AllowListGate(["Slashdot"])
        assert gate.check("slashdot", kind_of) is None
        assert gate.check("limit", kind_of) is None
        assert "cnn" in gate.check("cnn", kind_of)


class TestSeatLimitGate:
    """Tests for SeatLimitGate."""

    def test_under_limit(self):
        assert SeatLimitGate(2, seats("slashdot")).check("cnn", kind_of) is None

    def test_at_limit_installed(self):
        """Test installed handlers stay usable at the limit."""
        assert SeatLimitGate(1, seats("slashdot")).check("slashdot", kind_of) is None

    def test_at_limit_new(self):
        """Test new handlers are refused at the limit."""
        refusal = SeatLimitGate(1, seats("slashdot")).check("cnn", kind_of)
        assert refusal is not None
        assert "slashdot.py" in refusal

    def test_over_limit(self):
        """Test nothing is usable over the limit."""
        refusal = SeatLimitGate(1, seats("slashdot", "cnn")).check("slashdot", kind_of)
        assert "more than the allowed number" in refusal

    def test_non_acquisition(self):
        """Test filters are never limited."""
        assert SeatLimitGate(0, seats("slashdot", "cnn")).check("limit", kind_of) is None
