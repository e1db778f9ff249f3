"""Tests for configuration manager."""

import tempfile
from decimal import Decimal
from pathlib import Path

import pytest  # type: ignore[import-not-found]
import yaml  # type: ignore[import-untyped]

from shiftclock.core.config import ConfigManager
from shiftclock.core.models import TrackingType


@pytest.fixture
def temp_config_path():
    """Create a temporary config file path."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "config.yml"


class TestConfigManager:
    """Test ConfigManager."""

    def test_initialization_creates_default_config(self, temp_config_path: Path) -> None:
        """Test that initialization creates default configuration."""
        assert not temp_config_path.exists()

        config = ConfigManager(temp_config_path)

        assert temp_config_path.exists()
        assert config.get("version") == "1.0"
        assert config.get("general.data_dir") == "~/.shiftclock/data"
        assert config.get("sync.auto_reconcile") is True
        assert config.get("service.timeout") == 15.0

    def test_merge_with_defaults(self, temp_config_path: Path) -> None:
        """Test that partial config is merged with defaults."""
        with open(temp_config_path, "w") as f:
            yaml.dump({"version": "1.0", "service": {"base_url": "https://tt.example.com/api"}}, f)

        config = ConfigManager(temp_config_path)

        assert config.get("service.base_url") == "https://tt.example.com/api"
        assert config.get("service.timeout") == 15.0
        assert config.get("reports.window_days") == 7

    def test_get_with_dot_notation(self, temp_config_path: Path) -> None:
        config = ConfigManager(temp_config_path)

        assert config.get("timer.tick_interval") == 1.0
        assert config.get("nonexistent.key") is None
        assert config.get("nonexistent.key", "default") == "default"
        assert config.get("general.user_id", "anonymous") == "anonymous"

    def test_set_persists(self, temp_config_path: Path) -> None:
        config = ConfigManager(temp_config_path)

        config.set("service.timeout", 30)
        config.set("general.user_id", "u-42")

        reloaded = ConfigManager(temp_config_path)
        assert reloaded.get("service.timeout") == 30
        assert reloaded.get("general.user_id") == "u-42"

    def test_set_invalid_value_raises(self, temp_config_path: Path) -> None:
        config = ConfigManager(temp_config_path)

        with pytest.raises(ValueError, match="Invalid configuration"):
            config.set("policy.default_tracking_type", "Fortnightly")
        with pytest.raises(ValueError):
            config.set("service.timeout", 0)

    def test_invalid_file_is_backed_up(self, temp_config_path: Path) -> None:
        """Test that an invalid config file is replaced by defaults."""
        with open(temp_config_path, "w") as f:
            yaml.dump({"version": "1.0", "sync": {"reconcile_interval": 1}}, f)

        with pytest.raises(ValueError, match="backed up"):
            ConfigManager(temp_config_path)

        assert temp_config_path.with_suffix(".yml.backup").exists()
        assert ConfigManager(temp_config_path).get("sync.reconcile_interval") == 60

    def test_reset(self, temp_config_path: Path) -> None:
        config = ConfigManager(temp_config_path)
        config.set("reports.top_projects", 10)

        config.reset()

        assert config.get("reports.top_projects") == 5

    def test_get_all_keys(self, temp_config_path: Path) -> None:
        keys = ConfigManager(temp_config_path).get_all_keys()

        assert "service.base_url" in keys
        assert "sync.reconcile_interval" in keys
        assert "advanced.log_level" in keys

    def test_to_dict_is_a_copy(self, temp_config_path: Path) -> None:
        config = ConfigManager(temp_config_path)

        config.to_dict()["service"]["timeout"] = 99

        assert config.get("service.timeout") == 15.0

    def test_data_dir_is_expanded(self, temp_config_path: Path) -> None:
        config = ConfigManager(temp_config_path)

        assert config.data_dir == Path.home() / ".shiftclock" / "data"

    def test_default_tracking_type(self, temp_config_path: Path) -> None:
        config = ConfigManager(temp_config_path)
        config.set("policy.default_tracking_type", "Daily")

        assert config.default_tracking_type == TrackingType.DAILY

    def test_users(self, temp_config_path: Path) -> None:
        with open(temp_config_path, "w") as f:
            yaml.dump(
                {
                    "version": "1.0",
                    "users": {
                        "u1": {"name": "Alice", "shift": "Weekly", "hourly_rate": 45},
                        "u2": {"name": "Bob"},
                    },
                },
                f,
            )

        users = ConfigManager(temp_config_path).users()

        assert users["u1"].shift == "Weekly"
        assert users["u1"].hourly_rate == Decimal("45")
        assert users["u2"].shift is None
        assert set(users) == {"u1", "u2"}
