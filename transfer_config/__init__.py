"""
transfer_config -- single public entrypoint for engine configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration
    files or environment variables directly.

Architecture position:
    Configuration.  Sits above ``transfer_kernel`` and below
    ``transfer_services`` / ``transfer_modules``.  The kernel MUST NEVER
    import from ``transfer_config``.

Failure modes:
    - ``FileNotFoundError`` -- the requested config file does not exist.
    - ``ValueError`` -- a setting is out of range.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``TRANSFER_CONFIG_TRACE`` log entry with the config id, version and
    checksum, tying every invoice due date back to the configuration that
    produced it.
"""

from __future__ import annotations

from pathlib import Path

from transfer_config.loader import load_yaml_file, parse_config
from transfer_config.schema import DocumentNumbering, TransferConfig
from transfer_kernel.logging_config import get_logger

_logger = get_logger("config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

__all__ = [
    "DocumentNumbering",
    "TransferConfig",
    "get_active_config",
]


def get_active_config(config_path: Path | None = None) -> TransferConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Override path to a YAML configuration file.
            Defaults to transfer_config/defaults.yaml.

    Returns:
        Frozen, validated TransferConfig.
    """
    path = Path(config_path) if config_path is not None else _DEFAULT_CONFIG_PATH
    config = parse_config(load_yaml_file(path))

    _logger.info(
        "TRANSFER_CONFIG_TRACE",
        extra={
            "trace_type": "TRANSFER_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "config_path": str(path),
            "settlement_term_days": config.settlement_term_days,
        },
    )
    return config
