"""
Docker Compose file parser.

Parses stack files into plain dicts and provides checked accessors for the
parts the reconciler reads (secrets, configs). Supports ${VAR} and
${VAR:-default} substitution from a stack's values file.
"""

import re
from typing import Any, Dict, Optional

import yaml

from stacks.errors import ComposeParseError

# Top-level keys holding swarm-managed objects
OBJECT_KINDS = ('secrets', 'configs')


class ComposeShapeError(ValueError):
    """A compose section or field does not have the expected type"""
    pass


class ComposeParser:
    """Parser for Docker Compose files"""

    def parse(self, compose_yaml, variables: dict = None):
        """
        Parse Docker Compose YAML content.

        Args:
            compose_yaml: YAML content as string or bytes
            variables: Dict of variables for ${VAR} substitution, or None
                       to leave the text untouched

        Returns:
            Parsed compose data as dict

        Raises:
            ComposeParseError: If YAML is invalid or required fields missing
        """
        if isinstance(compose_yaml, bytes):
            try:
                compose_yaml = compose_yaml.decode('utf-8')
            except UnicodeDecodeError as e:
                raise ComposeParseError(f"Compose file is not valid UTF-8: {e}")

        if variables is not None:
            compose_yaml = self._substitute_variables(compose_yaml, variables)

        try:
            data = yaml.safe_load(compose_yaml)
        except yaml.YAMLError as e:
            raise ComposeParseError(f"Invalid YAML syntax: {e}")

        if not isinstance(data, dict):
            raise ComposeParseError("Compose file must be a YAML object")

        # Note: 'version' is optional in the Compose Specification

        if 'services' not in data:
            raise ComposeParseError("Missing 'services' field")

        if not data['services']:
            raise ComposeParseError("No services defined")

        return data

    def parse_values(self, values_yaml) -> Dict[str, str]:
        """
        Parse a values file into substitution variables.

        Scalars are stringified (booleans as 'true'/'false', null as '').

        Raises:
            ComposeParseError: If the file is not a flat YAML mapping
        """
        if isinstance(values_yaml, bytes):
            values_yaml = values_yaml.decode('utf-8', errors='replace')
        try:
            data = yaml.safe_load(values_yaml)
        except yaml.YAMLError as e:
            raise ComposeParseError(f"Invalid YAML syntax in values file: {e}")

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ComposeParseError("Values file must be a YAML object")

        variables = {}
        for key, value in data.items():
            if isinstance(value, (dict, list)):
                raise ComposeParseError(f"Value for '{key}' must be a scalar")
            if isinstance(value, bool):
                value = 'true' if value else 'false'
            variables[str(key)] = '' if value is None else str(value)
        return variables

    def _substitute_variables(self, yaml_content: str, variables: dict) -> str:
        """
        Substitute ${VAR} and ${VAR:-default} syntax with values.

        Raises:
            ComposeParseError: If required variable is missing
        """
        # Pattern matches ${VAR} or ${VAR:-default}
        pattern = r'\$\{([A-Za-z_][A-Za-z0-9_]*)(:-([^}]*))?\}'

        def replace_var(match):
            var_name = match.group(1)
            has_default = match.group(2) is not None
            default_value = match.group(3) if has_default else None

            if var_name in variables:
                return variables[var_name]

            if has_default:
                return default_value

            raise ComposeParseError(f"Missing required variable: {var_name}")

        return re.sub(pattern, replace_var, yaml_content)

    def get_objects(self, compose_data: dict, kind: str) -> Dict[str, Any]:
        """
        Top-level secrets or configs mapping, {} if absent.

        Raises:
            ComposeShapeError: If the section is not a mapping
        """
        return get_mapping(compose_data, kind)


def get_mapping(data: dict, key: str) -> dict:
    """
    Return data[key] as a dict; a missing or null key yields {}.

    Raises:
        ComposeShapeError: If the value is present but not a mapping
    """
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ComposeShapeError(f"'{key}' must be a mapping, got {type(value).__name__}")
    return value


def get_string(data: dict, key: str) -> Optional[str]:
    """
    Return data[key] as a str, None if missing.

    Raises:
        ComposeShapeError: If the value is present but not a string
    """
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ComposeShapeError(f"'{key}' must be a string, got {type(value).__name__}")
    return value


def is_external(entry) -> bool:
    """True if a secrets/configs entry is marked external."""
    if not isinstance(entry, dict):
        return False
    external = entry.get('external')
    # Legacy compose files use external: {name: ...}
    return external is True or isinstance(external, dict)
