"""
Site profile configuration loader.
Reads config/site_profiles.yaml once per path and caches the parsed document.
"""
import yaml
import logging
from pathlib import Path
from typing import Dict, Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_PROFILES_PATH = Path(__file__).parent.parent / 'config' / 'site_profiles.yaml'

# Cache for loaded config, keyed by resolved path
_config_cache: Dict[str, Dict] = {}


def load_site_profile_config(path: Optional[Union[str, Path]] = None) -> Dict:
    """Load site profile configuration from YAML file."""
    config_path = Path(path) if path else DEFAULT_PROFILES_PATH
    cache_key = str(config_path.resolve())

    if cache_key in _config_cache:
        return _config_cache[cache_key]

    if not config_path.exists():
        logger.warning(f"[profiles] Site profile file not found: {config_path}. No profiles loaded.")
        _config_cache[cache_key] = {}
        return _config_cache[cache_key]

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            loaded = yaml.safe_load(f) or {}
        logger.info(f"[profiles] Loaded site profiles from {config_path}")
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"[profiles] Error loading site profiles from {config_path}: {e}")
        loaded = {}

    _config_cache[cache_key] = loaded
    return loaded


def clear_config_cache() -> None:
    _config_cache.clear()
