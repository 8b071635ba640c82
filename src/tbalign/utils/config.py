"""Module in charge of loading tbalign configuration files.

A configuration file is a YAML document which supports three extensions on
top of the standard syntax:
- ``include: base.yaml`` (or a list of files) at the top level merges other
  configuration files underneath the current one;
- ``key: !include block.yaml`` inlines a file as the value of a block;
- ``align.nsigma: 2.0`` style dotted keys override a single nested value.
"""

import os
import re
from copy import deepcopy

import yaml

__all__ = ["load_config", "parse_value", "set_nested_value"]


class ConfigLoader(yaml.SafeLoader):
    """YAML loader which resolves `!include` tags relative to the file."""

    def __init__(self, stream):
        """Initialize the loader.

        Parameters
        ----------
        stream : _io.TextIOWrapper
            Output of python's `open` function on a yaml file
        """
        # Fetch the parent directory where the configuration file lives
        self._root = os.path.split(stream.name)[0]

        # Initialize the base loader
        super().__init__(stream)

    def include(self, node):
        """Load and include a YAML file that is requested in the base config.

        Parameters
        ----------
        node : yaml.Node
            Node which contains the name of the file to include
        """
        filename = os.path.join(self._root, self.construct_scalar(node))
        with open(filename, "r", encoding="utf-8") as f:
            return yaml.load(f, Loader=ConfigLoader)


ConfigLoader.add_constructor("!include", ConfigLoader.include)

# Pattern of the dot-notation keys ("key.path.here")
DOTTED_KEY = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*(?:\.[a-zA-Z_][a-zA-Z0-9_]*)+$")


def deep_merge(base, override):
    """Recursively merge a dictionary into another one.

    Parameters
    ----------
    base : dict
        Base dictionary to merge into
    override : dict
        Dictionary with values to override

    Returns
    -------
    dict
        Merged dictionary (the inputs are left untouched)
    """
    result = deepcopy(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def set_nested_value(config, key_path, value):
    """Set a nested value in a dictionary using dot notation.

    Parameters
    ----------
    config : dict
        Configuration dictionary to modify in place
    key_path : str
        Dot-separated path to the key (e.g. "align.nsigma")
    value : object
        Value to set

    Returns
    -------
    dict
        Modified configuration dictionary
    """
    keys = key_path.split(".")
    current = config
    for key in keys[:-1]:
        if key not in current:
            current[key] = {}
        elif not isinstance(current[key], dict):
            raise ValueError(f"Cannot set '{key_path}': '{key}' is not a dictionary")
        current = current[key]

    current[keys[-1]] = value

    return config


def parse_value(value_str):
    """Parse a string value into the appropriate Python type.

    Parameters
    ----------
    value_str : str
        String representation of the value

    Returns
    -------
    object
        Parsed value (the input string if it cannot be parsed)
    """
    if not isinstance(value_str, str) or value_str.strip() == "":
        return value_str

    try:
        return yaml.safe_load(value_str)
    except yaml.YAMLError:
        return value_str


def load_config(cfg_path):
    """Load a configuration file to a dictionary.

    Parameters
    ----------
    cfg_path : str
        Path to the configuration file

    Returns
    -------
    dict
        Loaded and merged configuration dictionary
    """
    root_dir = os.path.dirname(os.path.abspath(cfg_path))
    with open(cfg_path, "r", encoding="utf-8") as f:
        main_config = yaml.load(f, Loader=ConfigLoader)

    if main_config is None:
        return {}

    # Split the include directives and dotted overrides from the rest
    includes, overrides, cleaned = [], {}, {}
    for key, value in main_config.items():
        if key == "include":
            includes.extend([value] if isinstance(value, str) else value)
        elif DOTTED_KEY.match(key):
            overrides[key] = value
        else:
            cleaned[key] = value

    # Load included files first, in order, then the file itself on top
    config = {}
    for include_file in includes:
        include_path = os.path.join(root_dir, include_file)
        if not os.path.exists(include_path):
            raise FileNotFoundError(f"Included file not found: {include_path}")
        config = deep_merge(config, load_config(include_path))

    config = deep_merge(config, cleaned)

    # Apply the dot-notation overrides last
    for key_path, value in overrides.items():
        set_nested_value(config, key_path, parse_value(value))

    return config
