"""Scope configuration handling.

Scope configurations live in INI files, one section per scope:

[Mock]
save_dir = ./mock_output/
file_prefix = UVM
file_order = indexed
persist = perFrame
keep_in_memory = true
poll_interval_s = 0.1
track_focus = false
presets_path = ~/.mdscope/presets.json

# Driver configuration
driver.type = MockStageCamera
driver.frame_shape = 64, 64
driver.focal_plane_um = 0.0

Configurations are looked up in the user file (~/.mdscope/scopes.ini) first,
then in the package defaults (mdscope/system/scopes/<name>.ini).

See Also
--------
mdscope.system.base_config : ScopeConfig
mdscope.system.system : ScopeSystem
"""

from __future__ import annotations

from configparser import ConfigParser
from pathlib import Path
from typing import Any

from loguru import logger

from mdscope.device import get_valid_device_types
from mdscope.types import FILE_ORDER, PERSIST
from mdscope.util import USER_DIR

from .base_config import ConfigVersion, ScopeConfig

PACKAGE_CONFIG_DIR = Path(__file__).parent / "scopes"
REQUIRED_FIELDS = ("save_dir", "driver.type")


def user_scopes_file() -> Path:
    return USER_DIR / "scopes.ini"


def _parse_value(value: str) -> Any:
    """INI string -> bool, int, float, tuple of numbers or str."""
    text = value.strip()
    if text.lower() in ("true", "yes", "on"):
        return True
    if text.lower() in ("false", "no", "off"):
        return False
    if "," in text:
        parts = [p.strip() for p in text.split(",") if p.strip()]
        parsed = [_parse_value(p) for p in parts]
        if all(isinstance(p, (int, float)) and not isinstance(p, bool) for p in parsed):
            return tuple(parsed)
        return text
    for cast in (int, float):
        try:
            return cast(text)
        except ValueError:
            continue
    return text


def validate_scope_config(config: ConfigParser, section: str) -> tuple[bool, str]:
    """Validate scope configuration section.

    Returns
    -------
    tuple[bool, str]
        (is_valid, error_message)
    """
    missing = [f for f in REQUIRED_FIELDS if f not in config[section]]
    if missing:
        return False, f"Missing required fields: {', '.join(missing)}"
    driver_type = config[section]["driver.type"]
    if driver_type not in get_valid_device_types():
        return False, f"Invalid driver type: {driver_type}"
    file_order = config[section].get("file_order", FILE_ORDER.INDEXED)
    if file_order not in (FILE_ORDER.INDEXED, FILE_ORDER.LINEAR):
        return False, f"Invalid file order: {file_order}"
    persist = config[section].get("persist", PERSIST.PER_FRAME)
    if persist not in (PERSIST.NONE, PERSIST.PER_FRAME, PERSIST.APPEND_RAW):
        return False, f"Invalid persist mode: {persist}"
    return True, ""


def _create_scope_config(config: ConfigParser, section: str) -> ScopeConfig:
    is_valid, msg = validate_scope_config(config, section)
    if not is_valid:
        raise ValueError(f"Invalid configuration for scope '{section}': {msg}")
    sec = config[section]
    driver_config = {
        key.removeprefix("driver."): _parse_value(val)
        for key, val in sec.items()
        if key.startswith("driver.") and key != "driver.type"
    }
    presets_path = sec.get("presets_path", "").strip() or None
    return ScopeConfig(
        scope_name=section,
        save_dir=sec["save_dir"],
        file_prefix=sec.get("file_prefix", ScopeConfig.file_prefix),
        file_order=sec.get("file_order", ScopeConfig.file_order),
        persist=sec.get("persist", ScopeConfig.persist),
        keep_in_memory=sec.getboolean("keep_in_memory", ScopeConfig.keep_in_memory),
        poll_interval_s=sec.getfloat("poll_interval_s", ScopeConfig.poll_interval_s),
        track_focus=sec.getboolean("track_focus", ScopeConfig.track_focus),
        presets_path=str(Path(presets_path).expanduser()) if presets_path else None,
        driver_type=sec["driver.type"],
        driver_config=driver_config,
    )


def load_scope_config(scope_name: str, path: Path | None = None) -> ScopeConfig:
    """Load a scope configuration, user file first, then package defaults.

    Section lookup is case-insensitive.
    """
    user_file = Path(path) if path else user_scopes_file()
    package_file = PACKAGE_CONFIG_DIR / f"{scope_name.lower()}.ini"
    for file in (user_file, package_file):
        if not file.exists():
            continue
        config = ConfigParser()
        config.read(file)
        for section in config.sections():
            if section.lower() == scope_name.lower():
                logger.debug("Loading scope '{}' from {}", section, file)
                return _create_scope_config(config, section)
    raise ValueError(
        f"Scope '{scope_name}' not found in:\n"
        f"- User config: {user_file}\n"
        f"- Package config: {package_file}"
    )


def list_available_scopes(path: Path | None = None) -> dict[str, str]:
    """Map scope names to their source ('user' or 'package'). User entries win."""
    scopes = {}
    if PACKAGE_CONFIG_DIR.exists():
        for file in PACKAGE_CONFIG_DIR.glob("*.ini"):
            config = ConfigParser()
            config.read(file)
            for section in config.sections():
                scopes[section] = "package"
    user_file = Path(path) if path else user_scopes_file()
    if user_file.exists():
        config = ConfigParser()
        config.read(user_file)
        for section in config.sections():
            scopes[section] = "user"
    return scopes


def create_default_config_file(file_path: Path) -> None:
    """Create a scopes.ini with the mock scope as an example."""
    file_path.parent.mkdir(parents=True, exist_ok=True)
    logger.debug(f"Creating default scopes file at {file_path}")
    config = ConfigParser()
    config["DEFAULT"] = {"version": ConfigVersion.CURRENT.value}
    config["Mock"] = {
        "save_dir": "./mock_output/",
        "file_prefix": "UVM",
        "file_order": FILE_ORDER.INDEXED,
        "persist": PERSIST.PER_FRAME,
        "driver.type": "MockStageCamera",
        "driver.frame_shape": "64, 64",
    }
    with file_path.open("w") as f:
        config.write(f)


def install_scope_config(name: str, path: Path | None = None) -> None:
    """Copy a package scope configuration into the user file.

    Raises
    ------
    FileNotFoundError
        If there is no package configuration `name`.
    ValueError
        If the user file already has a scope `name`.
    """
    package_file = PACKAGE_CONFIG_DIR / f"{name.lower()}.ini"
    if not package_file.exists():
        raise FileNotFoundError(f"Package configuration '{name}' not found")
    config = ConfigParser()
    config.read(package_file)
    section = next((s for s in config.sections() if s.lower() == name.lower()), None)
    if section is None:
        raise ValueError(f"Scope '{name}' not found in package configuration")

    user_file = Path(path) if path else user_scopes_file()
    user_file.parent.mkdir(parents=True, exist_ok=True)
    user_config = ConfigParser()
    if user_file.exists():
        user_config.read(user_file)
        if section in user_config.sections():
            raise ValueError(f"Scope '{section}' already exists in user configuration")
    else:
        user_config["DEFAULT"] = {"version": ConfigVersion.CURRENT.value}
    user_config[section] = dict(config[section])
    with user_file.open("w") as f:
        user_config.write(f)
    logger.info("Installed scope '{}' to {}", section, user_file)
