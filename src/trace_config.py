#!/usr/bin/env python3
"""
Runtime configuration for the trace analyzer.

Settings live in an optional JSON file; anything not present falls back to
the defaults below. Command-line flags override both.
"""

import json
import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "trace_analyzer.json"


@dataclass
class TraceConfig:
    """Settings shared by the pipeline driver, the CLI and the graph export"""
    encoding: str = "utf-8"
    encoding_errors: str = "replace"
    progress_fraction: float = 0.01
    neo4j_uri: str = "bolt://localhost:7687"
    neo4j_user: str = "neo4j"
    neo4j_password: str = "password"
    clear_graph: bool = True
    log_file: Optional[str] = "trace_analyzer.log"

    def __post_init__(self):
        if not 0 < self.progress_fraction <= 1:
            raise ValueError(f"progress_fraction must be in (0, 1], got {self.progress_fraction}")


def load_config(config_file: Optional[Path] = None) -> TraceConfig:
    """
    Load configuration from a JSON file.

    Args:
        config_file: Path to the JSON file (default: trace_analyzer.json)

    Returns:
        TraceConfig with file values applied over the defaults
    """
    config_file = Path(config_file or DEFAULT_CONFIG_FILE)
    if not config_file.exists():
        logger.debug(f"No config file at {config_file}; using defaults")
        return TraceConfig()

    with open(config_file, 'r') as f:
        values = json.load(f)

    if not isinstance(values, dict):
        raise ValueError(f"Config file {config_file} must contain a JSON object")

    known = {f.name for f in fields(TraceConfig)}
    for key in sorted(set(values) - known):
        logger.warning(f"Ignoring unknown config key '{key}' in {config_file.name}")

    config = TraceConfig(**{k: v for k, v in values.items() if k in known})
    logger.info(f"Loaded configuration from {config_file}")
    return config


def save_config(config: TraceConfig, config_file: Path):
    """Write configuration to a JSON file."""
    config_file = Path(config_file)
    with open(config_file, 'w') as f:
        json.dump(asdict(config), f, indent=2)
    logger.info(f"Saved configuration to {config_file}")
