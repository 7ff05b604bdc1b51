"""
Configuration for data-schema.

Uses pydantic-settings for environment variable loading.
"""

import sys
from pathlib import Path

from loguru import logger
from pydantic import Field
from pydantic_settings import BaseSettings


class DataSchemaConfig(BaseSettings):
    """Data schema configuration loaded from environment."""

    # Where schema and scope files live
    schema_dir: Path = Field(default=Path("config/data_schema"), description="Schema file root")
    scope_dir: Path = Field(default=Path("config/scopes"), description="Scope file root")

    # Recursion limits
    max_nesting_depth: int = Field(
        default=10, ge=1, description="Depth budget for compiling nested properties"
    )
    max_source_depth: int = Field(
        default=10, ge=1, description="Maximum length of a virtual property's source chain"
    )

    log_level: str = Field(default="INFO", description="Log level for the stderr sink")

    # Transformer extensions, as "package.module:attribute"
    extensions: list[str] = Field(default_factory=list, description="Extension import paths")

    model_config = {"env_prefix": "DATA_SCHEMA_"}


def init_logging(config: DataSchemaConfig | None = None) -> None:
    """Replace loguru's default handler with a stderr sink at the configured level."""
    config = config or DataSchemaConfig()
    logger.remove()
    logger.add(sys.stderr, level=config.log_level.upper())
