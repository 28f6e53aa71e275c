from __future__ import annotations

import pytest

from blockscope.mock import make_probe_seed, mock_probe_fns, scripted_probe_fns
from blockscope.probes import PROBE_CATALOGUE
from blockscope.types import Outcome


def test_probe_seed_is_deterministic_and_distinct():
    assert make_probe_seed("baitElements", 7) == make_probe_seed("baitElements", 7)
    assert make_probe_seed("baitElements", 7) != make_probe_seed("heightCheck", 7)
    assert make_probe_seed("baitElements", 7) != make_probe_seed("baitElements", 8)
    assert 0 <= make_probe_seed("x", 1) < 2**64


def test_mock_probes_cover_catalogue():
    fns = mock_probe_fns(0.5, seed=3)
    assert set(fns) == set(PROBE_CATALOGUE)


def test_mock_extremes():
    assert all(fn() is True for fn in mock_probe_fns(1.0).values())
    assert all(fn() is False for fn in mock_probe_fns(0.0).values())
    assert all(fn() is None for fn in mock_probe_fns(0.5, failure_rate=1.0).values())


def test_mock_same_seed_same_draws():
    a = [fn() for fn in mock_probe_fns(0.5, seed=11).values()]
    b = [fn() for fn in mock_probe_fns(0.5, seed=11).values()]
    assert a == b


def test_mock_rejects_bad_rates():
    with pytest.raises(ValueError):
        mock_probe_fns(1.5)
    with pytest.raises(ValueError):
        mock_probe_fns(0.5, failure_rate=-0.1)


def test_scripted_probe_fns():
    fns = scripted_probe_fns({"a": True, "b": "negative", "c": None})
    assert fns["a"]() is Outcome.POSITIVE
    assert fns["b"]() is Outcome.NEGATIVE
    assert fns["c"]() is Outcome.INDETERMINATE
