"""
Portal configuration loaded from the environment.

Every PortalConfig field can be overridden with an ``RRK_<FIELD>`` variable,
read from the process environment or a ``.env`` file.
"""

import os
import logging
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from config_schemas import PortalConfig

logger = logging.getLogger(__name__)

ENV_PREFIX = "RRK_"

_BOOL_TRUE = {"1", "true", "yes", "on"}


def _coerce(raw: str, annotation: Any) -> Any:
    if annotation is bool:
        return raw.strip().lower() in _BOOL_TRUE
    return raw


def load_config(env_file: Optional[str] = None, **overrides) -> PortalConfig:
    """Build the portal config from defaults, environment and explicit overrides"""
    load_dotenv(env_file)

    values: Dict[str, Any] = {}
    for name, field in PortalConfig.model_fields.items():
        if name == "company_columns":
            continue
        raw = os.getenv(f"{ENV_PREFIX}{name.upper()}")
        if raw is not None and raw != "":
            values[name] = _coerce(raw, field.annotation)

    values.update({k: v for k, v in overrides.items() if v is not None})
    config = PortalConfig(**values)
    logger.debug(f"Loaded portal config for {config.base_url} (output: {config.output_dir})")
    return config
