from pathlib import Path

import pytest
import yaml

from kirby.configuration.app_configuration import (
    DEFAULT_ACQUIRE_TIMEOUT,
    DEFAULT_POOL_SIZE,
    DEFAULT_RESET_PROMPT_SECONDS,
    AppConfig,
)
from kirby.datatypes.welcome_datatypes import WelcomeDefaults


@pytest.fixture()
def config_path(tmp_path: Path) -> Path:
    return tmp_path / "app_config.yml"


def test_app_config_reload_parses_yaml(config_path: Path) -> None:
    config_payload = {
        "database": {"path": "/tmp/kirby-test.db", "pool_size": 6, "acquire_timeout_seconds": 2.5},
        "assets": {"directory": "/srv/kirby/assets"},
        "welcome": {
            "default_template": "hello %username%",
            "default_image": "sky",
            "font_family": "dejavu",
            "reset_prompt_seconds": 10,
        },
    }
    config_path.write_text(yaml.safe_dump(config_payload), encoding="utf-8")

    config = AppConfig(config_path)

    assert config.database_path == Path("/tmp/kirby-test.db")
    assert config.pool_size == 6
    assert config.acquire_timeout == pytest.approx(2.5)
    assert config.assets_dir == Path("/srv/kirby/assets")
    assert config.welcome_defaults == WelcomeDefaults(message_template="hello %username%", image_key="sky")
    assert config.font_family == "dejavu"
    assert config.reset_prompt_seconds == pytest.approx(10.0)
    assert config.data["database"]["pool_size"] == 6


def test_app_config_missing_file_returns_defaults(tmp_path: Path) -> None:
    config = AppConfig(tmp_path / "does_not_exist.yml")

    assert config.data == {}
    assert config.database_path == Path("./data/kirby.db")
    assert config.pool_size == DEFAULT_POOL_SIZE
    assert config.acquire_timeout == DEFAULT_ACQUIRE_TIMEOUT
    assert config.assets_dir == Path("./assets")
    assert config.welcome_defaults == WelcomeDefaults()
    assert config.font_family is None
    assert config.reset_prompt_seconds == DEFAULT_RESET_PROMPT_SECONDS


def test_app_config_invalid_yaml_returns_defaults(config_path: Path) -> None:
    config_path.write_text("database: [unclosed", encoding="utf-8")

    config = AppConfig(config_path)

    assert config.data == {}


def test_app_config_non_mapping_is_ignored(config_path: Path) -> None:
    config_path.write_text("- just\n- a list\n", encoding="utf-8")
    assert AppConfig(config_path).data == {}


def test_app_config_bad_section_falls_back(config_path: Path) -> None:
    config_path.write_text("database: nope\nwelcome:\n  font_family: null\n", encoding="utf-8")

    config = AppConfig(config_path)

    assert config.pool_size == DEFAULT_POOL_SIZE
    assert config.font_family is None


def test_pool_size_is_at_least_one(config_path: Path) -> None:
    config_path.write_text("database:\n  pool_size: 0\n", encoding="utf-8")
    assert AppConfig(config_path).pool_size == 1


def test_app_config_reload_picks_up_changes(config_path: Path) -> None:
    config_path.write_text("welcome:\n  default_image: grey\n", encoding="utf-8")
    config = AppConfig(config_path)
    assert config.welcome_defaults.image_key == "grey"

    config_path.write_text("welcome:\n  default_image: sky\n", encoding="utf-8")
    config.reload()

    assert config.welcome_defaults.image_key == "sky"


def test_bundled_config_matches_defaults() -> None:
    config = AppConfig(Path(__file__).parents[1] / "config" / "app_config.yml")

    assert config.pool_size == DEFAULT_POOL_SIZE
    assert config.welcome_defaults == WelcomeDefaults()
    assert config.reset_prompt_seconds == DEFAULT_RESET_PROMPT_SECONDS
