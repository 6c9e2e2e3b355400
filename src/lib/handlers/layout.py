"""
Presentation directive handlers

    :::deck{size="16x9" transition="fade" autoplay autoplayDelay=5000}
    :::slide{transition="slide" steps=2}
    :::reveal{at=1 enter="fade"}
    Appears on step one
    :::
    :::
    :::

    :::layer{x=10 y=20 w=300 h=200 anchor="center"}
    :::text{x=40 y=40 size=32 weight=700}
    :::wrapper{as="section" className="intro"}
    :shape{type="rect" x=0 y=0 w=100 h=50 fill="blue"}

Every handler resolves `from` against ::preset entries of its own type;
explicit attributes win over preset ones. The deck groups its content
into slides and registers slide and step counts with the DeckNavigator.
"""

import json
from typing import Any, Dict, List, Optional, Tuple

from ...models.attributes import AttributeSpec
from ...models.nodes import DirectiveKind, DirectiveNode, Node, RenderNode, label_strip, node_toString, text_make
from ..attributes import (
    DirectiveError,
    additionalAttributes_apply,
    attributes_extract,
    attributes_interpolate,
    attrs_merge,
    directiveKind_require,
    quotes_strip,
)
from ..expression import js_string, number_is
from ..log import LOG
from ..transformer import (
    indentation_replace,
    marker_remove,
    markerAfter_remove,
    markerParagraph_is,
    whitespace_is,
)


LAYOUT_NUMERIC = ('x', 'y', 'w', 'h', 'z', 'rotate', 'scale')

ANCHOR_ORIGINS = {
    'top-left': '0% 0%',
    'top': '50% 0%',
    'top-right': '100% 0%',
    'left': '0% 50%',
    'center': '50% 50%',
    'right': '100% 50%',
    'bottom-left': '0% 100%',
    'bottom': '50% 100%',
    'bottom-right': '100% 100%',
}

WRAPPER_TAGS = ('span', 'div', 'p', 'section')

REVEAL_SCHEMA = {
    'at': AttributeSpec('number'),
    'exitAt': AttributeSpec('number'),
    'enter': AttributeSpec('string'),
    'exit': AttributeSpec('string'),
    'enterDir': AttributeSpec('string'),
    'exitDir': AttributeSpec('string'),
    'enterDuration': AttributeSpec('number'),
    'exitDuration': AttributeSpec('number'),
    'onEnter': AttributeSpec('string'),
    'interruptBehavior': AttributeSpec('string'),
    'from': AttributeSpec('string', expression=False),
    'id': AttributeSpec('string'),
}
REVEAL_EXCLUDES = tuple(REVEAL_SCHEMA) + ('className', 'style')

SLIDE_SCHEMA = {
    'transition': AttributeSpec('string'),
    'enter': AttributeSpec('string'),
    'exit': AttributeSpec('string'),
    'enterDir': AttributeSpec('string'),
    'exitDir': AttributeSpec('string'),
    'enterDuration': AttributeSpec('number'),
    'exitDuration': AttributeSpec('number'),
    'enterDelay': AttributeSpec('number'),
    'exitDelay': AttributeSpec('number'),
    'enterEasing': AttributeSpec('string', expression=False),
    'exitEasing': AttributeSpec('string', expression=False),
    'steps': AttributeSpec('number'),
    'onEnter': AttributeSpec('string'),
    'onExit': AttributeSpec('string'),
    'from': AttributeSpec('string', expression=False),
    'id': AttributeSpec('string'),
}
SLIDE_EXCLUDES = tuple(name for name in SLIDE_SCHEMA if name != 'id')

LAYER_SCHEMA = dict(
    {name: AttributeSpec('number') for name in LAYOUT_NUMERIC},
    anchor=AttributeSpec('string'),
    id=AttributeSpec('string'),
)
LAYER_SCHEMA['from'] = AttributeSpec('string', expression=False)
LAYER_EXCLUDES = LAYOUT_NUMERIC + ('anchor', 'id', 'from', 'className', 'layerClassName')

WRAPPER_SCHEMA = {
    'as': AttributeSpec('string'),
    'from': AttributeSpec('string', expression=False),
    'id': AttributeSpec('string'),
}

TEXT_SCHEMA = dict(
    {name: AttributeSpec('number') for name in LAYOUT_NUMERIC},
    anchor=AttributeSpec('string'),
    align=AttributeSpec('string'),
    size=AttributeSpec('number'),
    weight=AttributeSpec('number'),
    lineHeight=AttributeSpec('number'),
    color=AttributeSpec('string'),
    id=AttributeSpec('string'),
    layerId=AttributeSpec('string'),
)
TEXT_SCHEMA['as'] = AttributeSpec('string')
TEXT_SCHEMA['from'] = AttributeSpec('string', expression=False)
TEXT_EXCLUDES = tuple(TEXT_SCHEMA) + ('style', 'className', 'layerClassName')

SHAPE_SCHEMA = dict(
    {name: AttributeSpec('number') for name in LAYOUT_NUMERIC},
    type=AttributeSpec('string', default='rect'),
    anchor=AttributeSpec('string'),
    fill=AttributeSpec('string'),
    stroke=AttributeSpec('string'),
    strokeWidth=AttributeSpec('number'),
    radius=AttributeSpec('number'),
    points=AttributeSpec('string', expression=False),
    shadow=AttributeSpec('boolean'),
    id=AttributeSpec('string'),
)
SHAPE_SCHEMA['from'] = AttributeSpec('string', expression=False)
SHAPE_EXCLUDES = tuple(SHAPE_SCHEMA) + ('className', 'style')

DECK_SCHEMA = {
    'size': AttributeSpec('string'),
    'transition': AttributeSpec('string'),
    'theme': AttributeSpec('string'),
    'from': AttributeSpec('string', expression=False),
    'autoplay': AttributeSpec('boolean'),
    'autoplayDelay': AttributeSpec('number'),
    'pause': AttributeSpec('boolean'),
    'id': AttributeSpec('string'),
    'hideNavigation': AttributeSpec('boolean'),
    'showSlideCount': AttributeSpec('boolean'),
    'initialSlide': AttributeSpec('number'),
    'a11y': AttributeSpec('object', expression=False),
}


# ----------------------------------------------------------------------
# Shared helpers
# ----------------------------------------------------------------------

def presetAttrs_merge(raw: Dict[str, Any], preset_type: str, transformer: Any) -> Dict[str, Any]:
    """Raw attributes laid over the preset named by `from`"""
    name = raw.get('from')
    preset = transformer.preset_get(preset_type, quotes_strip(name)) if isinstance(name, str) else None
    if name and preset is None:
        LOG(f"preset: no {preset_type} preset named {name}", level=2)
    return attrs_merge(preset, raw)


def layoutAttrs_extract(
    directive: DirectiveNode,
    schema: Dict[str, AttributeSpec],
    preset_type: str,
    transformer: Any,
) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    Typed attributes and the preset-merged raw map of a layout directive.

    Returns:
        (attrs, merged raw attributes)
    """
    merged = presetAttrs_merge(dict(directive.attributes or {}), preset_type, transformer)
    result = attributes_extract(
        directive, schema, transformer.scope(), transformer.evaluator, raw_attrs=merged,
    )
    return result.attrs, merged


def classStyle_interpolate(merged: Dict[str, Any], transformer: Any, names=('className', 'style')) -> Dict[str, Any]:
    subset = {name: merged[name] for name in names if isinstance(merged.get(name), str)}
    return attributes_interpolate(subset, transformer.scope(), transformer.evaluator)


def transition_make(
    base: Any,
    direction: Optional[str] = None,
    duration: Optional[float] = None,
    delay: Optional[float] = None,
    easing: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """
    Build a transition description.

    Example:
        >>> transition_make('fade', duration=300)
        {'type': 'fade', 'duration': 300}
    """
    if not base:
        return None
    transition = dict(base) if isinstance(base, dict) else {'type': base}
    if direction:
        transition['dir'] = direction
    if number_is(duration):
        transition['duration'] = duration
    if number_is(delay):
        transition['delay'] = delay
    if easing:
        transition['easing'] = easing
    return transition


def container_emit(directive: DirectiveNode, parent: Node, index: int, transformer: Any, node: RenderNode) -> int:
    following = indentation_replace(directive, parent, index, [node])
    marker_remove(parent, following, transformer.settings.directive_marker)
    return following


def numericProps_copy(attrs: Dict[str, Any], props: Dict[str, Any]) -> None:
    for name in LAYOUT_NUMERIC:
        if number_is(attrs.get(name)):
            props[name] = attrs[name]


def revealSteps_count(nodes: List[Any]) -> int:
    """Highest reveal `at`/`exitAt` among nodes, searched recursively"""
    steps = 0
    for node in nodes:
        if not isinstance(node, Node):
            continue
        if isinstance(node, RenderNode) and node.tag == 'reveal':
            for name in ('at', 'exitAt'):
                if number_is(node.props.get(name)):
                    steps = max(steps, int(node.props[name]))
        steps = max(steps, revealSteps_count(node.children))
    return steps


# ----------------------------------------------------------------------
# Slides and decks
# ----------------------------------------------------------------------

def slideProps_make(attrs: Dict[str, Any], merged: Dict[str, Any]) -> Dict[str, Any]:
    props: Dict[str, Any] = {}
    enter = transition_make(
        attrs.get('enter') or attrs.get('transition'), attrs.get('enterDir'),
        attrs.get('enterDuration'), attrs.get('enterDelay'), attrs.get('enterEasing'),
    )
    exit_ = transition_make(
        attrs.get('exit') or attrs.get('transition'), attrs.get('exitDir'),
        attrs.get('exitDuration'), attrs.get('exitDelay'), attrs.get('exitEasing'),
    )
    if enter or exit_:
        props['transition'] = {}
        if enter:
            props['transition']['enter'] = enter
        if exit_:
            props['transition']['exit'] = exit_
    if number_is(attrs.get('steps')):
        props['steps'] = attrs['steps']
    for name in ('onEnter', 'onExit'):
        if attrs.get(name):
            props[name] = attrs[name]
    additionalAttributes_apply(merged, props, SLIDE_EXCLUDES)
    return props


def slide_make(directive: Optional[DirectiveNode], content: List[Any], transformer: Any) -> RenderNode:
    """Slide element from a slide directive's attributes (or none) and its processed content"""
    if directive is None:
        return RenderNode(tag='slide', props={}, children=content)
    attrs, merged = layoutAttrs_extract(directive, SLIDE_SCHEMA, 'slide', transformer)
    return RenderNode(tag='slide', props=slideProps_make(attrs, merged), children=content)


def slide_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    """A slide outside any deck: emitted as is, with no navigation bookkeeping"""
    directiveKind_require(directive, DirectiveKind.CONTAINER)
    attrs, merged = layoutAttrs_extract(directive, SLIDE_SCHEMA, 'slide', transformer)
    props = slideProps_make(attrs, merged)
    content = transformer.block_run(label_strip(directive.children))
    return container_emit(directive, parent, index, transformer, RenderNode(tag='slide', props=props, children=content))


def themeValue_parse(value: Any) -> Optional[Dict[str, Any]]:
    if not value:
        return None
    if isinstance(value, dict):
        return value
    try:
        parsed = json.loads(value)
    except (TypeError, ValueError):
        return {'theme': value}
    return parsed if isinstance(parsed, dict) else {'theme': value}


def deckProps_make(attrs: Dict[str, Any], merged: Dict[str, Any], transformer: Any) -> Dict[str, Any]:
    settings = transformer.settings
    props: Dict[str, Any] = {}
    if isinstance(attrs.get('size'), str):
        width, height = settings.deckSize_parse(attrs['size'])
        props['size'] = {'width': width, 'height': height}
    if attrs.get('transition'):
        props['transition'] = attrs['transition']
    theme = themeValue_parse(attrs.get('theme'))
    if theme:
        props['theme'] = theme
    if attrs.get('autoplay'):
        delay = attrs.get('autoplayDelay')
        props['autoAdvanceMs'] = delay if number_is(delay) else settings.autoplay_delay_ms
        if attrs.get('pause'):
            props['autoAdvancePaused'] = True
    if attrs.get('hideNavigation'):
        props['hideNavigation'] = True
    if attrs.get('showSlideCount'):
        props['showSlideCount'] = True
    if number_is(attrs.get('initialSlide')):
        props['initialSlide'] = attrs['initialSlide']
    if attrs.get('id'):
        props['id'] = attrs['id']
    a11y = attrs.get('a11y')
    if isinstance(a11y, str):
        try:
            props['a11y'] = json.loads(a11y)
        except ValueError:
            LOG(f"deck: ignoring malformed a11y value {a11y!r}", level=2)
    elif a11y:
        props['a11y'] = a11y
    additionalAttributes_apply(merged, props, tuple(DECK_SCHEMA))
    return props


def deck_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    """
    Group a deck's content into slides.

    :::slide children become slides of their own. Other content before
    the first slide forms an implicit slide; content after a slide joins
    it. A slide's step count is its `steps` attribute, or else the
    highest reveal step it contains.
    """
    directiveKind_require(directive, DirectiveKind.CONTAINER)
    attrs, merged = layoutAttrs_extract(directive, DECK_SCHEMA, 'deck', transformer)
    props = deckProps_make(attrs, merged, transformer)
    marker = transformer.settings.directive_marker

    children = [
        child for child in transformer.indentedCode_expand(label_strip(directive.children))
        if not markerParagraph_is(child, marker) and not whitespace_is(child)
    ]
    slides: List[RenderNode] = []
    pending: List[Node] = []

    def pending_commit() -> None:
        holder = Node(type='root', children=list(pending))
        marker_remove(holder, len(holder.children) - 1, marker)
        nodes = holder.children
        while nodes and whitespace_is(nodes[0]):
            nodes.pop(0)
        while nodes and whitespace_is(nodes[-1]):
            nodes.pop()
        pending.clear()
        if not nodes:
            return
        content = transformer.block_run(nodes)
        if slides:
            slides[-1].children.extend(content)
        else:
            slides.append(slide_make(None, content, transformer))

    for child in children:
        if isinstance(child, DirectiveNode) and child.name == 'slide' and child.kind is DirectiveKind.CONTAINER:
            pending_commit()
            slide = slide_make(child, [], transformer)
            slide.children = transformer.block_run(label_strip(child.children))
            slides.append(slide)
        else:
            pending.append(child)
    pending_commit()

    counts = []
    for slide in slides:
        steps = slide.props.get('steps')
        counts.append(int(steps) if number_is(steps) else revealSteps_count(slide.children))
    transformer.navigator.slides_register(counts)
    LOG(f"deck: {len(slides)} slide(s)", level=2)

    return container_emit(directive, parent, index, transformer, RenderNode(tag='deck', props=props, children=slides))


# ----------------------------------------------------------------------
# Positioned content
# ----------------------------------------------------------------------

def reveal_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    directiveKind_require(directive, DirectiveKind.CONTAINER)
    attrs, merged = layoutAttrs_extract(directive, REVEAL_SCHEMA, 'reveal', transformer)
    props: Dict[str, Any] = {}
    for name in ('at', 'exitAt'):
        if number_is(attrs.get(name)):
            props[name] = attrs[name]
    enter = transition_make(attrs.get('enter'), attrs.get('enterDir'), attrs.get('enterDuration'))
    exit_ = transition_make(attrs.get('exit'), attrs.get('exitDir'), attrs.get('exitDuration'))
    if enter:
        props['enter'] = enter
    if exit_:
        props['exit'] = exit_
    for name in ('interruptBehavior', 'onEnter', 'id'):
        if attrs.get(name):
            props[name] = attrs[name]
    for name, value in classStyle_interpolate(merged, transformer).items():
        if value:
            props[name] = value
    additionalAttributes_apply(merged, props, REVEAL_EXCLUDES)
    content = transformer.block_run(label_strip(directive.children))
    return container_emit(directive, parent, index, transformer, RenderNode(tag='reveal', props=props, children=content))


def layerTrailing_absorb(parent: Node, index: int, layer: RenderNode, transformer: Any) -> None:
    """
    Move content left behind by an early-closed layer into it.

    When a stray closing marker follows the layer, the siblings before it
    belong to the layer, along with any container directives and blank
    nodes directly after it. Without a stray marker nothing moves.
    """
    marker = transformer.settings.directive_marker
    end = index
    while end < len(parent.children) and not markerParagraph_is(parent.children[end], marker):
        end += 1
    if end >= len(parent.children):
        return
    pending = parent.children[index:end]
    del parent.children[index:end + 1]
    while index < len(parent.children):
        node = parent.children[index]
        if markerParagraph_is(node, marker):
            del parent.children[index]
            continue
        if (isinstance(node, DirectiveNode) and node.kind is DirectiveKind.CONTAINER) or whitespace_is(node):
            pending.append(node)
            del parent.children[index]
            continue
        break
    if pending:
        processed = transformer.block_run(pending)
        if processed and not isinstance(processed[-1], RenderNode) and processed[-1].type == 'paragraph':
            last = processed[-1]
            last.children = [
                child for child in last.children
                if isinstance(child, RenderNode) or child.type != 'text' or marker not in (child.value or '')
            ]
            if all(whitespace_is(child) for child in last.children):
                processed.pop()
        layer.children.extend(processed)
    markerAfter_remove(parent, index, marker)


def layer_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    directiveKind_require(directive, DirectiveKind.CONTAINER)
    attrs, merged = layoutAttrs_extract(directive, LAYER_SCHEMA, 'layer', transformer)
    props: Dict[str, Any] = {}
    numericProps_copy(attrs, props)
    if attrs.get('anchor'):
        props['anchor'] = attrs['anchor']
    props['data-testid'] = 'layer'
    classes = classStyle_interpolate(merged, transformer, ('className',))
    if classes.get('className'):
        props['className'] = classes['className']
    if attrs.get('id'):
        props['id'] = attrs['id']
    additionalAttributes_apply(merged, props, LAYER_EXCLUDES)
    content = transformer.block_run(label_strip(directive.children))
    layer = RenderNode(tag='layer', props=props, children=content)
    following = indentation_replace(directive, parent, index, [layer])
    layerTrailing_absorb(parent, following, layer, transformer)
    return following


def wrapperTag_resolve(attrs: Dict[str, Any]) -> str:
    tag = attrs.get('as') if isinstance(attrs.get('as'), str) else 'div'
    return tag if tag in WRAPPER_TAGS else 'div'


def wrapper_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    """Wrap content in a span, div, p or section; plain paragraphs are flattened"""
    directiveKind_require(directive, DirectiveKind.CONTAINER)
    attrs, merged = layoutAttrs_extract(directive, WRAPPER_SCHEMA, 'wrapper', transformer)
    classes = classStyle_interpolate(merged, transformer, ('className',))
    props: Dict[str, Any] = {
        'data-testid': 'wrapper',
        'className': ' '.join(name for name in ('campfire-wrapper', classes.get('className')) if name),
    }
    if attrs.get('id'):
        props['id'] = attrs['id']
    additionalAttributes_apply(merged, props, ('as', 'className', 'from', 'id'))
    content: List[Any] = []
    for child in transformer.block_run(label_strip(directive.children)):
        if not isinstance(child, RenderNode) and child.type == 'paragraph':
            content.extend(child.children)
        else:
            content.append(child)
    content = [child for child in content if isinstance(child, RenderNode) or not whitespace_is(child)]
    return container_emit(directive, parent, index, transformer, RenderNode(tag=wrapperTag_resolve(attrs), props=props, children=content))


def positionStyle_make(attrs: Dict[str, Any]) -> List[str]:
    """CSS declarations for x/y/w/h/z, rotate/scale and the anchor origin"""
    style = ['position:absolute']
    for name, css in (('x', 'left'), ('y', 'top'), ('w', 'width'), ('h', 'height')):
        if number_is(attrs.get(name)):
            style.append(f"{css}:{js_string(attrs[name])}px")
    if number_is(attrs.get('z')):
        style.append(f"z-index:{js_string(attrs['z'])}")
    transforms = []
    if number_is(attrs.get('rotate')):
        transforms.append(f"rotate({js_string(attrs['rotate'])}deg)")
    if number_is(attrs.get('scale')):
        transforms.append(f"scale({js_string(attrs['scale'])})")
    if transforms:
        style.append(f"transform:{' '.join(transforms)}")
    anchor = attrs.get('anchor')
    if anchor and anchor != 'top-left' and anchor in ANCHOR_ORIGINS:
        style.append(f"transform-origin:{ANCHOR_ORIGINS[anchor]}")
    return style


def text_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    """
    Absolutely positioned text.

    The element's tag is `as` (default p); its text is the plain text of
    the processed content.
    """
    directiveKind_require(directive, DirectiveKind.CONTAINER)
    attrs, merged = layoutAttrs_extract(directive, TEXT_SCHEMA, 'text', transformer)
    tag = str(attrs['as']) if attrs.get('as') else 'p'
    style = positionStyle_make(attrs)
    if attrs.get('align'):
        style.append(f"text-align:{attrs['align']}")
    if number_is(attrs.get('size')):
        style.append(f"font-size:{js_string(attrs['size'])}px")
    if number_is(attrs.get('weight')):
        style.append(f"font-weight:{js_string(attrs['weight'])}")
    if number_is(attrs.get('lineHeight')):
        style.append(f"line-height:{js_string(attrs['lineHeight'])}")
    if attrs.get('color'):
        style.append(f"color:{attrs['color']}")
    raw_style = merged.get('style')
    if isinstance(raw_style, dict):
        style.append(';'.join(f"{key}:{js_string(value)}" for key, value in raw_style.items()))
    else:
        interpolated = classStyle_interpolate(merged, transformer, ('style',)).get('style')
        if interpolated:
            style.append(interpolated)

    props: Dict[str, Any] = {}
    numericProps_copy(attrs, props)
    if attrs.get('anchor'):
        props['anchor'] = attrs['anchor']
    props['style'] = ';'.join(style)
    classes = classStyle_interpolate(merged, transformer, ('className', 'layerClassName'))
    props['className'] = ' '.join(
        name for name in (classes.get('className'), 'text-base', 'font-normal') if name
    )
    if classes.get('layerClassName'):
        props['layerClassName'] = classes['layerClassName']
    for name in ('id', 'layerId'):
        if attrs.get(name):
            props[name] = attrs[name]
    props['data-component'] = 'slideText'
    props['data-as'] = tag
    additionalAttributes_apply(merged, props, TEXT_EXCLUDES)

    processed = transformer.block_run(label_strip(directive.children))
    content = ''.join(
        child.text_collect() if isinstance(child, RenderNode) else node_toString(child)
        for child in processed
    ).strip()
    node = RenderNode(tag=tag, props=props, children=[text_make(content)] if content else [])
    return container_emit(directive, parent, index, transformer, node)


def shape_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    """
    Positioned vector shape (rect, ellipse, line, polygon...).

    Leaf or text directive; `points` is passed through for polygons.
    """
    if directive.kind is DirectiveKind.CONTAINER:
        raise DirectiveError(f"{directive.name} can only be used as a leaf or text directive")
    attrs, merged = layoutAttrs_extract(directive, SHAPE_SCHEMA, 'shape', transformer)
    props: Dict[str, Any] = {'type': attrs.get('type') or 'rect'}
    numericProps_copy(attrs, props)
    for name in ('anchor', 'fill', 'stroke', 'points', 'id'):
        if attrs.get(name):
            props[name] = attrs[name]
    for name in ('strokeWidth', 'radius'):
        if number_is(attrs.get(name)):
            props[name] = attrs[name]
    if attrs.get('shadow'):
        props['shadow'] = True
    style = positionStyle_make(attrs)
    extra = classStyle_interpolate(merged, transformer)
    if extra.get('style'):
        style.append(extra['style'])
    props['style'] = ';'.join(style)
    if extra.get('className'):
        props['className'] = extra['className']
    props['data-testid'] = 'slideShape'
    additionalAttributes_apply(merged, props, SHAPE_EXCLUDES)
    return indentation_replace(directive, parent, index, [RenderNode(tag='shape', props=props)])
