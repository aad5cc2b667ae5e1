#!/usr/bin/env python3
"""
Configuration for ensemble voting analyses.

A study YAML is layered over ``configs/default.yaml``; string values may
refer to environment variables or other keys as ``${NAME}`` /
``${section.key}``. Only the ``voting`` and ``ensemble`` sections are
validated, everything else is passed through to the scripts.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional, Set
import yaml

logger = logging.getLogger(__name__)

VOTING_OUTPUTS = ('classes', 'indices')

_REFERENCE = re.compile(r'\$\{([^}]+)\}')


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing required parameters."""
    pass


def load_yaml(file_path: Path) -> Dict[str, Any]:
    """Read one YAML file; an empty file is an empty mapping."""
    file_path = Path(file_path)
    if not file_path.is_file():
        raise ConfigurationError(f"Configuration file not found: {file_path}")

    with open(file_path, 'r') as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {file_path}: {e}") from e

    data = {} if data is None else data
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Top level of {file_path} must be a mapping, got {type(data).__name__}"
        )
    return data


def merge_configs(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Layer ``override`` over ``base``; nested sections merge key by key."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            value = merge_configs(current, value)
        merged[key] = value
    return merged


def _lookup(config: Dict[str, Any], key_path: str) -> Any:
    """Follow a dotted key path; raises KeyError when any step is missing."""
    node = config
    for part in key_path.split('.'):
        if not isinstance(node, dict) or part not in node:
            raise KeyError(key_path)
        node = node[part]
    return node


def substitute_variables(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Expand ``${...}`` references in every string of ``config``.

    A name found in the environment wins over a config key of the same
    name. References to other keys are expanded recursively, so chains
    like ``votes -> output_root -> root`` resolve in one call. Unknown
    references are left as written; a circular one raises
    ConfigurationError.
    """
    def expand(text: str, active: Set[str]) -> str:
        def replace(match) -> str:
            name = match.group(1)
            if name in os.environ:
                return os.environ[name]
            if name in active:
                raise ConfigurationError(f"Circular config reference: ${{{name}}}")
            try:
                target = _lookup(config, name)
            except KeyError:
                return match.group(0)
            if isinstance(target, str):
                return expand(target, active | {name})
            return str(target)

        return _REFERENCE.sub(replace, text)

    def walk(node: Any) -> Any:
        if isinstance(node, str):
            return expand(node, set())
        if isinstance(node, dict):
            return {k: walk(v) for k, v in node.items()}
        if isinstance(node, list):
            return [walk(v) for v in node]
        return node

    return walk(config)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_config(config: Dict[str, Any]) -> None:
    """
    Validate the voting and ensemble sections.

    Raises
    ------
    ConfigurationError
        If a parameter has an invalid type or value
    """
    voting = config.get('voting', {})
    if not isinstance(voting, dict):
        raise ConfigurationError("voting section must be a mapping")
    if 'output' in voting and voting['output'] not in VOTING_OUTPUTS:
        raise ConfigurationError(
            f"voting.output must be one of {VOTING_OUTPUTS}, got {voting['output']!r}"
        )

    ensemble = config.get('ensemble', {})
    if not isinstance(ensemble, dict):
        raise ConfigurationError("ensemble section must be a mapping")

    if 'cv_folds' in ensemble:
        cv_folds = ensemble['cv_folds']
        if not _is_int(cv_folds) or cv_folds < 2:
            raise ConfigurationError(
                f"ensemble.cv_folds must be an integer >= 2, got {cv_folds}"
            )

    if 'seed' in ensemble and not _is_int(ensemble['seed']):
        raise ConfigurationError(f"ensemble.seed must be an integer, got {ensemble['seed']}")

    if 'estimators' in ensemble:
        from neurovote.analysis.voting.ensemble import ESTIMATOR_FACTORIES

        names = ensemble['estimators']
        if not isinstance(names, list) or not names:
            raise ConfigurationError("ensemble.estimators must be a non-empty list")
        unknown = [n for n in names if n not in ESTIMATOR_FACTORIES]
        if unknown:
            raise ConfigurationError(
                f"Unknown ensemble.estimators {unknown}; "
                f"choose from {sorted(ESTIMATOR_FACTORIES)}"
            )

    logger.debug("Configuration validation passed")


def _default_config_path() -> Path:
    package_dir = Path(__file__).parent.parent
    return package_dir / 'configs' / 'default.yaml'


def load_config(config_path: Optional[Path] = None, validate: bool = True) -> Dict[str, Any]:
    """
    Study config layered over the defaults, references expanded.

    The defaults come from a ``default.yaml`` beside ``config_path`` when
    one exists, otherwise from the packaged ``configs/default.yaml``.
    Raises ConfigurationError for unreadable files or, with ``validate``,
    invalid voting/ensemble parameters.
    """
    study_config = {}
    default_path = _default_config_path()

    if config_path is not None:
        config_path = Path(config_path)
        study_config = load_yaml(config_path)

        # default.yaml next to the study config wins over the packaged one
        local_default = config_path.parent / 'default.yaml'
        if local_default.exists() and local_default != config_path:
            default_path = local_default

    if default_path.exists():
        config = merge_configs(load_yaml(default_path), study_config)
    else:
        logger.warning("Default configuration not found at %s", default_path)
        config = study_config

    config = substitute_variables(config)

    if validate:
        validate_config(config)

    return config


def get_config_value(config: Dict[str, Any], key_path: str, default: Any = None) -> Any:
    """
    Get a value from config using dot notation.

    Examples
    --------
    >>> get_config_value(config, 'ensemble.cv_folds')
    5
    >>> get_config_value(config, 'missing.key', default=3)
    3
    """
    try:
        return _lookup(config, key_path)
    except KeyError:
        return default
