"""
Input/output: run configuration.
"""

from .config import RefinementConfig, load_config, config_from_dict
