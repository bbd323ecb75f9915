import pytest
import json
from pageschema.config import (
    CONFIG_FILE_NAME, USER_AGENTS, AppConfig, find_config_file, get_user_agent, load_config,
    merge_config, validate_config,
)


class TestConfig:
    def test_defaults_are_valid(self):
        assert validate_config(AppConfig()) == []

    def test_merge_converts_milliseconds(self):
        config = merge_config(AppConfig(), {
            "cache": {"ttl": 600000, "maxSize": 25, "storage": "file"},
            "rateLimiting": {"maxRequests": 5, "windowMs": 1500},
            "http": {"timeout": 2500, "userAgent": "Bot/2"},
        })
        assert config.cache.ttl == 600.0
        assert config.cache.max_size == 25
        assert config.cache.storage == "file"
        assert config.rate_limiting.max_requests == 5
        assert config.rate_limiting.window == 1.5
        assert config.http.timeout == 2.5
        assert config.http.user_agent == "Bot/2"

    def test_merge_ignores_unknown_and_invalid(self):
        config = merge_config(AppConfig(), {
            "plugins": {"enabled": True},
            "cache": {"colour": "blue", "maxSize": "lots"},
            "generation": "not a section",
        })
        assert config.cache.max_size == AppConfig().cache.max_size
        assert not hasattr(config, "plugins")

    def test_validate_config_reports_problems(self):
        config = merge_config(AppConfig(), {
            "cache": {"maxSize": 0, "storage": "redis"},
            "rateLimiting": {"maxRequests": 0},
            "generation": {"concurrency": 0},
        })
        problems = validate_config(config)
        assert "cache.maxSize must be at least 1" in problems
        assert 'cache.storage must be "memory" or "file"' in problems
        assert "rateLimiting.maxRequests must be a positive number" in problems
        assert "generation.concurrency must be a positive number" in problems

    def test_load_config_file(self, tmp_path):
        path = tmp_path / CONFIG_FILE_NAME
        path.write_text(json.dumps({"generation": {"concurrency": 8, "retryOnFail": False}}), encoding="utf-8")

        assert find_config_file([str(tmp_path)]) == str(path)
        config = load_config(str(path))
        assert config.generation.concurrency == 8
        assert config.generation.retry_on_fail is False

    def test_load_config_rejects_non_object(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("[1, 2, 3]", encoding="utf-8")
        with pytest.raises(ValueError):
            load_config(str(path))

    def test_find_config_file_missing(self, tmp_path):
        assert find_config_file([str(tmp_path)]) is None

    def test_user_agents(self):
        assert get_user_agent("chrome") == USER_AGENTS["chrome"]
        assert get_user_agent("unknown") == USER_AGENTS["default"]
        assert get_user_agent("random") in USER_AGENTS.values()
