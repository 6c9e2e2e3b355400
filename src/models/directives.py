"""
Directive specification and metadata models

Defines the structure and categories of campfire directives for
dispatch, validation and registry management.
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import Callable, FrozenSet, List, Set

from .nodes import DirectiveKind


class DirectiveCategory(Enum):
    """
    Categories of campfire directives

    Used for organization and for the allow-lists of blocks such as batch.
    """
    STATE = "state"                  # ::set, ::array, ::random, ::push, ...
    CONTROL_FLOW = "control_flow"    # :::if, :::for, :::switch, :::batch, :::once
    STORY = "story"                  # :show, ::preset, :::onExit, :::trigger
    PRESENTATION = "presentation"    # :::deck, :::slide, :::reveal, :::layer, ...
    I18N = "i18n"                    # ::lang, ::translations, :t
    PERSISTENCE = "persistence"      # ::save, ::load, ::checkpoint, ...
    NAVIGATION = "navigation"        # ::goto, ::title, ::include, ::allowLandscape
    FORM = "form"                    # :input, :checkbox, :radio, :::select, ...
    MEDIA = "media"                  # ::sound, ::bgm, ::volume, ::preloadAudio, ...


ALL_KINDS: FrozenSet[DirectiveKind] = frozenset(DirectiveKind)


@dataclass
class DirectiveSpec:
    """
    Specification for a campfire directive

    Attributes:
        name: Directive name (without colons)
        category: Category for organization
        description: Human-readable description
        handler: Transform function (directive, parent, index, transformer) -> Optional[int]
        kinds: Directive shapes the handler accepts; other shapes are
               reported as validation errors by the handler
        examples: Example usage strings
        aliases: Alternative names for the directive
    """
    name: str
    category: DirectiveCategory
    description: str
    handler: Callable
    kinds: FrozenSet[DirectiveKind] = ALL_KINDS
    examples: List[str] = field(default_factory=list)
    aliases: List[str] = field(default_factory=list)

    def matches(self, directive_name: str) -> bool:
        """
        Check if this spec matches a directive name

        Args:
            directive_name: Name to check

        Returns:
            True if this spec handles the directive
        """
        return self.name == directive_name or directive_name in self.aliases


# Attribute names that may never be passed through to render props
RESERVED_ATTRIBUTES: Set[str] = {
    'class',   # use className instead
}

# Attribute names silently dropped when copying extra attributes
IGNORED_ATTRIBUTES: Set[str] = {
    'classes',
    'layerClass',
    'layerClasses',
}

RESERVED_ATTRIBUTE_ERROR = "class is a reserved attribute. Use className instead."


def reserved_is(attribute_name: str) -> bool:
    """Check if an attribute name is reserved"""
    return attribute_name in RESERVED_ATTRIBUTES
