import pytest

from config import MartingaleSettings
from errors import ConfigurationError
from martingale_sizer import MartingaleSizer
from trade_schema import MartingaleState


@pytest.mark.parametrize("prior_wins", [0, 1, 3, 10])
def test_loss_resets_anti_martingale_streak(prior_wins):
    sizer = MartingaleSizer(MartingaleSettings())
    for _ in range(prior_wins):
        sizer.record_result(True)
    sizer.record_result(False)
    assert sizer.streak == 0
    assert sizer.multiplier == 1.0


def test_multiplier_grows_linearly_and_is_capped():
    sizer = MartingaleSizer(MartingaleSettings(step=0.5, max_multiplier=2.0))
    multipliers = []
    for _ in range(4):
        sizer.record_result(True)
        multipliers.append(sizer.multiplier)
    assert multipliers == [1.5, 2.0, 2.0, 2.0]
    sizing = sizer.get_position_size(150)
    assert sizing.size == 300.0
    assert sizing.streak == 4


def test_exported_state_matches_replayed_wins():
    settings = MartingaleSettings(step=0.25, max_multiplier=3.0)
    live = MartingaleSizer(settings)
    for _ in range(5):
        live.record_result(True)
    state = live.export_state()

    replay = MartingaleSizer(settings)
    for _ in range(5):
        replay.record_result(True)
    assert replay.export_state() == state
    assert MartingaleSizer.from_state(state, settings).multiplier == state.current_multiplier


def test_martingale_mode_grows_on_losses():
    sizer = MartingaleSizer(MartingaleSettings(mode="martingale", step=1.0, max_multiplier=4.0))
    sizer.record_result(False)
    sizer.record_result(False)
    assert sizer.multiplier == 3.0
    sizer.record_result(True)
    assert sizer.streak == 0


def test_only_anti_martingale_resets_on_loss():
    settings = MartingaleSettings(mode="martingale", step=0.5, max_multiplier=2.0)
    martingale = MartingaleSizer.from_state(MartingaleState(streak=2, current_multiplier=2.0), settings)
    assert martingale.record_result(False) == 3
    assert martingale.multiplier == 2.0
    anti = MartingaleSizer.from_state(MartingaleState(streak=2, current_multiplier=2.0), MartingaleSettings())
    assert anti.record_result(False) == 0


def test_off_mode_always_sizes_at_base():
    sizer = MartingaleSizer(MartingaleSettings(mode="off"))
    sizer.record_result(True)
    sizer.set_streak(7)
    assert sizer.streak == 0
    assert sizer.get_position_size(100).size == 100.0


def test_configure_keeps_streak_unless_disabled():
    sizer = MartingaleSizer(MartingaleSettings())
    sizer.record_result(True)
    sizer.configure(MartingaleSettings(step=1.0))
    assert sizer.multiplier == 2.0
    sizer.configure(MartingaleSettings(mode="off"))
    assert sizer.streak == 0


def test_unknown_mode_is_rejected():
    with pytest.raises(ConfigurationError):
        MartingaleSizer(MartingaleSettings(mode="double-down"))
