import logging

from chex_ui import config
from chex_ui.config import PipelineConfig, setup_logging


def test_defaults():
    cfg = PipelineConfig()
    assert cfg.service_url == "http://127.0.0.1:8000"
    assert cfg.timeout == 120.0
    assert cfg.graph is None
    assert cfg.target_size == (224, 224)


def test_from_env_overrides():
    cfg = PipelineConfig.from_env(
        {
            "CHEXSCAN_SERVICE_URL": "https://xray.example.org/api/",
            "CHEXSCAN_TIMEOUT": "15",
            "CHEXSCAN_GRAPH": "chexnet_random",
            "CHEXSCAN_DEVICE": "cuda:0",
        }
    )
    assert cfg.service_url == "https://xray.example.org/api"
    assert cfg.timeout == 15.0
    assert cfg.graph == "chexnet_random"
    assert cfg.device == "cuda:0"


def test_from_env_ignores_empty_values():
    cfg = PipelineConfig.from_env({"CHEXSCAN_GRAPH": "", "UNRELATED": "1"})
    assert cfg == PipelineConfig()


def test_from_env_reads_process_environment(monkeypatch):
    monkeypatch.setenv("CHEXSCAN_TIMEOUT", "7.5")
    assert PipelineConfig.from_env().timeout == 7.5


def test_thresholds_are_consistent():
    assert config.MIN_ASPECT_RATIO < 1 < config.MAX_ASPECT_RATIO
    assert config.ROTATE_BELOW_ASPECT < config.MIN_ASPECT_RATIO
    assert config.ROTATE_ABOVE_ASPECT > config.MAX_ASPECT_RATIO
    assert config.MIN_BRIGHTNESS < config.TARGET_BRIGHTNESS < config.MAX_BRIGHTNESS


def test_setup_logging_runs():
    setup_logging(logging.DEBUG)
