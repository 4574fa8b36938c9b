"""YAML config sources with conf.d directory support.

Optional, intended for local/dev convenience. Environment variables always
take precedence in production.

Directory structure:
    conf/
    ├── sweeper.yaml   # Sweep cycle tuning
    ├── sweeper.d/     # Overrides, merged alphabetically
    │   └── 01-local.yml
    ├── db.yaml        # Database config
    ├── aws.yaml       # SQS/SNS client config
    ├── logging.yaml   # Logging config
    └── health.yaml    # Health endpoint config

The base directory defaults to ``conf`` and can be changed with
SWEEPER_CONFIG_DIR.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic_settings import YamlConfigSettingsSource

if TYPE_CHECKING:
    from pydantic_settings import BaseSettings

CONFIG_DIR_ENV = "SWEEPER_CONFIG_DIR"


class ConfDYamlConfigSettingsSource(YamlConfigSettingsSource):
    """YAML settings source with conf.d directory support.

    Loads ``<section>.yaml`` followed by ``<section>.d/*.{yaml,yml,json}`` in
    alphabetical order. Missing files are skipped silently.
    """

    def __init__(
        self,
        settings_cls: type[BaseSettings],
        section: str,
        base_dir: str = "conf",
    ) -> None:
        config_base = Path(os.getenv(CONFIG_DIR_ENV, base_dir))

        yaml_files: list[Path] = []
        main_file = config_base / f"{section}.yaml"
        if main_file.exists():
            yaml_files.append(main_file)

        confd_path = config_base / f"{section}.d"
        if confd_path.is_dir():
            yaml_files.extend(
                sorted(
                    p for p in confd_path.iterdir() if p.suffix in {".yaml", ".yml", ".json"}
                )
            )

        self._yaml_files = yaml_files

        super().__init__(
            settings_cls=settings_cls,
            yaml_file=yaml_files or None,
            yaml_file_encoding="utf-8",
        )

    def __repr__(self) -> str:
        files_str = ", ".join(str(f) for f in self._yaml_files)
        return f"{self.__class__.__name__}(yaml_files=[{files_str}])"


def yaml_source(settings_cls: type[BaseSettings], section: str) -> ConfDYamlConfigSettingsSource:
    """Create the YAML source for one settings section (sweeper, db, aws, ...)."""
    return ConfDYamlConfigSettingsSource(settings_cls, section)
