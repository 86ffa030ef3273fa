"""
Schema validation for image rewrite rule documents
"""

import logging
import re
from typing import Any

import jsonschema

from harbor_operator.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

IMAGE_RULES_SCHEMA: dict[str, Any] = {
    "type": "array",
    "items": {
        "oneOf": [
            {
                "type": "object",
                "required": ["registry", "project"],
                "properties": {
                    "registry": {"type": "string", "minLength": 1},
                    "project": {"type": "string", "minLength": 1},
                },
            },
            # Legacy "pattern,project" form
            {"type": "string", "pattern": "^.+,.+$"},
        ]
    },
}


def validate_image_rules(document: Any, source: str) -> None:
    """
    Validate a rule document against the rule schema and check every pattern compiles

    Args:
        document: Parsed rule list
        source: Where the rules came from, used in error messages

    Raises:
        ConfigurationError: If the document or one of its patterns is invalid
    """
    try:
        jsonschema.validate(instance=document, schema=IMAGE_RULES_SCHEMA)
    except jsonschema.ValidationError as e:
        error_path = " -> ".join(str(p) for p in e.absolute_path) if e.absolute_path else "root"
        error_msg = f"invalid image rules in {source} at {error_path}: {e.message}"
        logger.error("Image rule validation failed: %s", error_msg)
        raise ConfigurationError(
            error_msg, operation="validating image rules", resource=source
        ) from e

    for item in document:
        pattern = item["registry"] if isinstance(item, dict) else item.rpartition(",")[0]
        validate_rule_pattern(pattern, source)


def validate_rule_pattern(pattern: str, source: str) -> None:
    """
    Raises:
        ConfigurationError: If the pattern is not a valid regular expression
    """
    try:
        re.compile(pattern)
    except re.error as e:
        raise ConfigurationError(
            f"invalid registry pattern {pattern!r} in {source}: {e}",
            operation="validating image rules",
            resource=source,
        ) from e
