from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

DEFAULT_CONFIG_PATH = Path("configs/engine.yaml")
ENV_PREFIX = "PATCH_ENGINE_"


@dataclass
class ClusterOptions:
    kubeconfig: Optional[str] = None
    context: Optional[str] = None
    in_cluster: bool = False


@dataclass
class EngineConfig:
    batch_pause_seconds: float = 2.0
    poll_interval_seconds: float = 5.0
    readiness_timeout_seconds: float = 300.0
    default_strategy: str = "conservative"
    custom_rules: Dict[str, Dict[str, float]] = field(default_factory=dict)
    create_backup: bool = True
    log_level: str = "INFO"
    clusters: Dict[str, ClusterOptions] = field(default_factory=dict)

    def cluster(self, cluster_id: str) -> ClusterOptions:
        if cluster_id in self.clusters:
            return self.clusters[cluster_id]
        return self.clusters.get("default", ClusterOptions())

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "EngineConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown configuration key(s): {', '.join(unknown)}")
        values = dict(data)
        clusters = values.pop("clusters", None) or {}
        if not isinstance(clusters, dict):
            raise ValueError("clusters must be a mapping of cluster id to options")
        config = cls(**values)
        config.clusters = {
            str(name): ClusterOptions(**(options or {})) for name, options in clusters.items()
        }
        return config

    @classmethod
    def from_file(cls, path: Path = DEFAULT_CONFIG_PATH) -> "EngineConfig":
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path} must contain a YAML mapping")
        return cls.from_mapping(data)

    @classmethod
    def from_env(cls, path: Optional[Path] = None) -> "EngineConfig":
        """Load ``path`` (or ``PATCH_ENGINE_CONFIG``) when present, then apply env overrides."""

        config_path = path or Path(os.getenv(f"{ENV_PREFIX}CONFIG", str(DEFAULT_CONFIG_PATH)))
        config = cls.from_file(config_path) if config_path.exists() else cls()

        pause = os.getenv(f"{ENV_PREFIX}BATCH_PAUSE_SECONDS")
        if pause is not None:
            config.batch_pause_seconds = float(pause)
        interval = os.getenv(f"{ENV_PREFIX}POLL_INTERVAL_SECONDS")
        if interval is not None:
            config.poll_interval_seconds = float(interval)
        timeout = os.getenv(f"{ENV_PREFIX}READINESS_TIMEOUT_SECONDS")
        if timeout is not None:
            config.readiness_timeout_seconds = float(timeout)
        config.default_strategy = os.getenv(f"{ENV_PREFIX}STRATEGY", config.default_strategy)
        config.log_level = os.getenv(f"{ENV_PREFIX}LOG_LEVEL", config.log_level)

        kubeconfig = os.getenv("KUBECONFIG")
        if kubeconfig and "default" not in config.clusters:
            config.clusters["default"] = ClusterOptions(kubeconfig=kubeconfig)
        return config


__all__ = ["ClusterOptions", "EngineConfig", "DEFAULT_CONFIG_PATH"]
