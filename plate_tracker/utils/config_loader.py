"""
Config Loader - Loading of the YAML parameter files.
"""

import yaml
from pathlib import Path
from typing import Dict, Any


DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "pipeline_params.yaml"


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load a YAML configuration file.
    
    Args:
        config_path: Path to the YAML file
        
    Returns:
        Dictionary with the configuration (empty dict for an empty file)
        
    Raises:
        FileNotFoundError: If the file does not exist
        yaml.YAMLError: If the file is not valid YAML
    """
    config_file = Path(config_path)
    
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")
    
    with open(config_file, 'r') as f:
        try:
            config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Error parsing YAML file {config_path}: {e}")
    
    return config or {}


def load_default_config() -> Dict[str, Any]:
    """Load the parameter file shipped with the package."""
    return load_config(str(DEFAULT_CONFIG_PATH))


def get_nested_value(config: Dict[str, Any], key_path: str, default: Any = None) -> Any:
    """
    Get a nested value from a dictionary using a dot-notation path.
    
    Args:
        config: Configuration dictionary
        key_path: Dot-notation path (e.g. "optical_flow.max_level")
        default: Value returned when the key does not exist
        
    Returns:
        The value found, or default
        
    Example:
        >>> config = {'optical_flow': {'max_level': 2}}
        >>> get_nested_value(config, 'optical_flow.max_level')
        2
    """
    keys = key_path.split('.')
    value = config
    
    for key in keys:
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default
    
    return value
