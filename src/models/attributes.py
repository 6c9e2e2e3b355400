"""
Attribute schema models

AttributeSpec describes how one raw directive attribute is parsed;
ExtractResult is what attributes_extract() hands back to a handler.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

AttributeType = Literal["string", "number", "boolean", "object", "array"]

ATTRIBUTE_TYPES = ("string", "number", "boolean", "object", "array")


@dataclass(frozen=True)
class AttributeSpec:
    """
    Per-attribute schema entry

    Attributes:
        type: Target type of the parsed value
        required: Missing or unparsable values are recorded as errors
        default: Value used when the raw attribute is absent/unparsable
        expression: False disables expression evaluation of unquoted values
                    (for enum-like strings such as easing names)

    Example:
        AttributeSpec("number", required=True)
        AttributeSpec("string", expression=False)
    """
    type: AttributeType = "string"
    required: bool = False
    default: Any = None
    expression: bool = True

    def __post_init__(self) -> None:
        if self.type not in ATTRIBUTE_TYPES:
            raise ValueError(f"Unknown attribute type: {self.type}")


AttributeSchema = Dict[str, AttributeSpec]


@dataclass
class ExtractResult:
    """
    Parsed attributes of one directive

    Attributes:
        attrs: Successfully parsed values, keyed by attribute name
        key: Value of the schema's key attribute, when one was requested
        label: Container label text, when requested
        valid: True when no validation error was recorded
        errors: Validation messages, in schema order
    """
    attrs: Dict[str, Any] = field(default_factory=dict)
    key: Optional[str] = None
    label: Optional[str] = None
    valid: bool = True
    errors: List[str] = field(default_factory=list)
