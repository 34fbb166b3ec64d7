"""
Configuration management for MCP capabilities.
"""
import os
import yaml
import logging
from pathlib import Path
from typing import Dict, Any, Optional
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

class ConfigManager:
    """Manages per-capability configurations."""

    def __init__(self, config_dir: Path, environ: Optional[Dict[str, str]] = None):
        self.config_dir = Path(config_dir)
        self._cache: Dict[str, Any] = {}
        self.env_overrides: Dict[str, Dict[str, Any]] = {}

        # Load environment variables
        load_dotenv()

        # Cache environment overrides
        self._cache_env_overrides(os.environ if environ is None else environ)

    def _cache_env_overrides(self, environ: Dict[str, str]):
        """Cache all environment variables that could override capability configs."""
        for key, value in environ.items():
            # Format: CAPABILITY_NAME__CONFIG_KEY=value (double underscore separator),
            # underscores in the capability name stand for dashes
            if '__' not in key:
                continue
            capability, config_key = key.lower().split('__', 1)
            if not capability or not config_key:
                continue
            capability = capability.replace('_', '-')
            # YAML scalar parsing turns "30" into 30 and "true" into True
            try:
                parsed = yaml.safe_load(value)
            except yaml.YAMLError:
                parsed = value
            self.env_overrides.setdefault(capability, {})[config_key] = parsed

    def get_config(self, name: str, refresh: bool = False) -> Dict[str, Any]:
        """Get configuration for a specific capability."""
        if not refresh and name in self._cache:
            return self._cache[name]

        file_config: Dict[str, Any] = {}
        config_path = self.config_dir / f"{name}.yaml"
        if config_path.exists():
            try:
                with open(config_path) as f:
                    file_config = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                logger.error(f"Error loading config for {name}: {str(e)}")
                file_config = {}
            if not isinstance(file_config, dict):
                logger.error(f"Config for {name} is not a mapping, ignoring {config_path}")
                file_config = {}

        merged = {**file_config, **self.env_overrides.get(name, {})}
        self._cache[name] = merged
        return merged
