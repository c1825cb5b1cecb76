import pytest

from models.settings import QuantizerSettings


def test_defaults():
    settings = QuantizerSettings()
    assert settings.seed == 42
    assert settings.max_iterations == 30
    assert settings.tile_size == 16
    assert settings.workgroup_size == 256
    assert settings.n_seq == 24
    assert settings.channel_mask() == (1.0, 1.0, 1.0, 1.0)


def test_from_env(monkeypatch):
    monkeypatch.setenv("KMEANS_SEED", "7")
    monkeypatch.setenv("KMEANS_MAX_ITERATIONS", "5")
    monkeypatch.setenv("KMEANS_DEVICE", "cpu")
    monkeypatch.setenv("KMEANS_DISTANCE_CHANNELS", "rgb")
    monkeypatch.setenv("KMEANS_DEVICE_TIMEOUT_S", "2.5")
    monkeypatch.setenv("KMEANS_SHOW_PROGRESS", "true")

    settings = QuantizerSettings.from_env()
    assert settings.seed == 7
    assert settings.max_iterations == 5
    assert settings.device == "cpu"
    assert settings.channel_mask() == (1.0, 1.0, 1.0, 0.0)
    assert settings.device_timeout_s == 2.5
    assert settings.show_progress


def test_overrides_win_over_env(monkeypatch):
    monkeypatch.setenv("KMEANS_SEED", "7")
    settings = QuantizerSettings.from_env(seed=3, tolerance=None)
    assert settings.seed == 3
    assert settings.tolerance == 1e-4


@pytest.mark.parametrize("kwargs", [
    {"max_iterations": 0},
    {"tolerance": 0.0},
    {"device": "tpu"},
    {"distance_channels": "rgbx"},
    {"distance_channels": "rr"},
    {"distance_channels": ""},
    {"tile_size": 0},
    {"workgroup_size": 1 << 20, "n_seq": 16},
    {"device_timeout_s": -1.0},
])
def test_invalid_values(kwargs):
    with pytest.raises(ValueError):
        QuantizerSettings(**kwargs)
