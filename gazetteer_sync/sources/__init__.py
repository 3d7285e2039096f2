"""
Source configuration and field mappings for data sync.
"""

from .configs import SOURCE_CONFIG, get_source_config, load_source_configs, validate_source_config
from .mappings import FIELD_MAPPINGS, FieldMapping, get_path

__all__ = [
    'SOURCE_CONFIG',
    'FIELD_MAPPINGS',
    'FieldMapping',
    'get_path',
    'get_source_config',
    'load_source_configs',
    'validate_source_config',
]
