"""Tests for scope configuration handling."""

from configparser import ConfigParser

import pytest

from mdscope.system import (
    ConfigVersion,
    ScopeConfig,
    create_default_config_file,
    install_scope_config,
    list_available_scopes,
    load_presets,
    load_scope_config,
    save_presets,
    validate_scope_config,
)
from mdscope.system import sysconfig
from mdscope.types import FILE_ORDER, PERSIST, PresetMap


@pytest.fixture
def temp_config_dir(tmp_path):
    """Create temporary .mdscope directory."""
    config_dir = tmp_path / ".mdscope"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def user_scopes_file(temp_config_dir):
    """Create a user scopes.ini with one bench scope."""
    scopes_file = temp_config_dir / "scopes.ini"
    config = ConfigParser()
    config["DEFAULT"] = {"version": ConfigVersion.CURRENT.value}
    config["Bench"] = {
        "save_dir": "./bench_output/",
        "file_prefix": "BENCH",
        "file_order": "linear",
        "persist": "appendRaw",
        "keep_in_memory": "false",
        "poll_interval_s": "0.2",
        "track_focus": "yes",
        "presets_path": "~/presets.json",
        "driver.type": "MockStageCamera",
        "driver.frame_shape": "32, 48",
        "driver.focal_plane_um": "1.5",
        "driver.noise": "false",
        "driver.seed": "7",
    }
    with scopes_file.open("w") as f:
        config.write(f)
    return scopes_file


def test_validate_scope_config(user_scopes_file):
    """Test scope configuration validation."""
    config = ConfigParser()
    config.read(user_scopes_file)

    is_valid, error_msg = validate_scope_config(config, "Bench")
    assert is_valid, f"Valid configuration was marked as invalid: {error_msg}"
    assert error_msg == ""

    config["Bench"]["persist"] = "sometimes"
    is_valid, error_msg = validate_scope_config(config, "Bench")
    assert not is_valid
    assert "Invalid persist mode" in error_msg

    config["Bench"]["persist"] = PERSIST.NONE
    config["Bench"]["file_order"] = "random"
    is_valid, error_msg = validate_scope_config(config, "Bench")
    assert not is_valid
    assert "Invalid file order" in error_msg

    config["Bench"]["file_order"] = FILE_ORDER.INDEXED
    config["Bench"]["driver.type"] = "Microscope9000"
    is_valid, error_msg = validate_scope_config(config, "Bench")
    assert not is_valid
    assert "Invalid driver type" in error_msg

    del config["Bench"]["save_dir"]
    is_valid, error_msg = validate_scope_config(config, "Bench")
    assert not is_valid
    assert "Missing required fields: save_dir" in error_msg


def test_load_user_scope(user_scopes_file):
    config = load_scope_config("bench", path=user_scopes_file)
    assert isinstance(config, ScopeConfig)
    assert config.scope_name == "Bench"
    assert config.file_prefix == "BENCH"
    assert config.file_order == FILE_ORDER.LINEAR
    assert config.persist == PERSIST.APPEND_RAW
    assert config.keep_in_memory is False
    assert config.poll_interval_s == pytest.approx(0.2)
    assert config.track_focus is True
    assert not config.presets_path.startswith("~")
    assert config.driver_type == "MockStageCamera"
    assert config.driver_config == {
        "frame_shape": (32, 48),
        "focal_plane_um": 1.5,
        "noise": False,
        "seed": 7,
    }


def test_load_package_scope(tmp_path):
    config = load_scope_config("mock", path=tmp_path / "missing.ini")
    assert config.scope_name == "Mock"
    assert config.driver_type == "MockStageCamera"
    assert config.driver_config["frame_shape"] == (64, 64)
    assert config.persist == PERSIST.PER_FRAME


def test_user_scope_shadows_package(user_scopes_file):
    config = ConfigParser()
    config.read(user_scopes_file)
    config["Mock"] = {"save_dir": "./elsewhere/", "driver.type": "MockStageCamera"}
    with user_scopes_file.open("w") as f:
        config.write(f)
    assert load_scope_config("mock", path=user_scopes_file).save_dir == "./elsewhere/"


def test_load_missing_scope(user_scopes_file):
    with pytest.raises(ValueError, match="not found"):
        load_scope_config("nonexistent", path=user_scopes_file)


def test_load_invalid_scope(user_scopes_file):
    config = ConfigParser()
    config.read(user_scopes_file)
    config["Bench"]["driver.type"] = "Microscope9000"
    with user_scopes_file.open("w") as f:
        config.write(f)
    with pytest.raises(ValueError, match="Invalid driver type"):
        load_scope_config("Bench", path=user_scopes_file)


def test_list_available_scopes(user_scopes_file):
    scopes = list_available_scopes(path=user_scopes_file)
    assert scopes["Mock"] == "package"
    assert scopes["Bench"] == "user"


def test_create_default_config_file(temp_config_dir):
    scopes_file = temp_config_dir / "nested" / "scopes.ini"
    create_default_config_file(scopes_file)
    assert scopes_file.exists()
    config = load_scope_config("Mock", path=scopes_file)
    assert config.save_dir == "./mock_output/"
    assert list_available_scopes(path=scopes_file)["Mock"] == "user"


def test_install_scope_config(temp_config_dir):
    scopes_file = temp_config_dir / "scopes.ini"
    install_scope_config("mock", path=scopes_file)
    config = ConfigParser()
    config.read(scopes_file)
    assert "Mock" in config.sections()
    assert config["Mock"]["version"] == ConfigVersion.CURRENT.value

    with pytest.raises(ValueError, match="already exists"):
        install_scope_config("mock", path=scopes_file)
    with pytest.raises(FileNotFoundError):
        install_scope_config("nonexistent", path=scopes_file)


def test_default_user_file(monkeypatch, tmp_path):
    monkeypatch.setattr(sysconfig, "user_scopes_file", lambda: tmp_path / "scopes.ini")
    install_scope_config("mock")
    assert list_available_scopes()["Mock"] == "user"


def test_scope_config_validation():
    with pytest.raises(ValueError):
        ScopeConfig(scope_name="x", persist="sometimes")
    with pytest.raises(ValueError):
        ScopeConfig(scope_name="x", file_order="random")
    with pytest.raises(ValueError):
        ScopeConfig(scope_name="x", poll_interval_s=0)


def test_presets_round_trip(tmp_path):
    presets = PresetMap.from_dict({"bf": {"exposure_ms": 10, "led": "white"}})
    path = str(tmp_path / "presets.json")
    save_presets(path, presets)
    loaded = load_presets(path)
    assert loaded.channels == ("bf",)
    assert loaded.resolve("bf").settings == {"exposure_ms": 10, "led": "white"}


def test_load_presets_errors(tmp_path):
    assert len(load_presets(None)) == 0
    with pytest.raises(FileNotFoundError):
        load_presets(str(tmp_path / "missing.json"))
    bad = tmp_path / "bad.json"
    bad.write_text("[1, 2, 3]")
    with pytest.raises(ValueError):
        load_presets(str(bad))
