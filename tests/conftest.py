"""Pytest configuration and fixtures for ssh-jump tests."""

import os
import sys
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest
import yaml

tests_root = Path(__file__).parent
if str(tests_root) not in sys.path:
    sys.path.insert(0, str(tests_root))

ENV_VARS = ("SSH_JUMP_DIR", "SSH_JUMP_CONFIG", "SSH_JUMP_DEBUG", "SSH_JUMP_NO_SIGNAL_EXIT")


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path_factory: pytest.TempPathFactory) -> Generator[Path, None, None]:
    """Point the plugin directory at a temporary path and clear ssh-jump env vars.

    Yields
    ------
    Path
        Temporary plugin directory

    Notes
    -----
    SSH_JUMP_NO_SIGNAL_EXIT=1 keeps signal-driven cleanup from exiting the
    test process.
    """
    saved = {name: os.environ.pop(name, None) for name in ENV_VARS}

    plugin_dir = tmp_path_factory.mktemp("kubectlssh")
    os.environ["SSH_JUMP_DIR"] = str(plugin_dir)
    os.environ["SSH_JUMP_NO_SIGNAL_EXIT"] = "1"

    yield plugin_dir

    for name, value in saved.items():
        if value is None:
            os.environ.pop(name, None)
        else:
            os.environ[name] = value


@pytest.fixture
def plugin_dir(isolated_environment: Path) -> Path:
    """Temporary plugin directory."""
    return isolated_environment


@pytest.fixture
def identity_file(tmp_path: Path) -> Path:
    """Dummy identity file for the final destination hop."""
    path = tmp_path / "key.pem"
    path.write_text("not a real key\n")
    return path


@pytest.fixture
def write_config(plugin_dir: Path):
    """Helper fixture to write config.yaml into the plugin directory.

    Returns
    -------
    callable
        Function that takes a config dict and writes it to file
    """

    def _write(config_data: dict[str, Any]) -> Path:
        config_path = plugin_dir / "config.yaml"
        with open(config_path, "w") as f:
            yaml.dump(config_data, f)
        return config_path

    return _write
