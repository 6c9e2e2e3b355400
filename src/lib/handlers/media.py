"""
Media directive handlers

    ::preloadAudio[theme]{src="audio/theme.mp3"}
    ::preloadImage[map]{src="img/map.png"}
    ::sound[door]{volume=0.5 delay=200}
    ::bgm[theme]{loop=false fade=1000}      ::bgm{stop fade=500}
    ::volume{bgm=0.4 sfx=0.8}

Playback and caching belong to the host. Each directive becomes an empty
element of the same name whose props the audio and image layers act on.
Volumes are clamped into [0, 1]; fade and delay are milliseconds.
"""

from typing import Any, Dict, Optional

from ...models.attributes import AttributeSpec
from ...models.nodes import DirectiveKind, DirectiveNode, Node, RenderNode
from ..attributes import DirectiveError, attributes_extract, directiveKind_require, quotes_strip
from ..log import LOG
from ..transformer import indentation_replace, node_remove


ASSET_SCHEMA = {
    'id': AttributeSpec('string'),
    'src': AttributeSpec('string'),
}

SOUND_SCHEMA = {
    **ASSET_SCHEMA,
    'volume': AttributeSpec('number'),
    'delay': AttributeSpec('number'),
}

BGM_SCHEMA = {
    **ASSET_SCHEMA,
    'stop': AttributeSpec('boolean'),
    'volume': AttributeSpec('number'),
    'loop': AttributeSpec('boolean'),
    'fade': AttributeSpec('number'),
}

VOLUME_SCHEMA = {
    'bgm': AttributeSpec('number'),
    'sfx': AttributeSpec('number'),
}


def volume_clamp(value: float) -> float:
    return min(max(value, 0), 1)


def mediaAttrs_extract(directive: DirectiveNode, schema: Dict[str, AttributeSpec], transformer: Any) -> Dict[str, Any]:
    directiveKind_require(directive, DirectiveKind.LEAF)
    return attributes_extract(directive, schema, transformer.scope(), transformer.evaluator).attrs


def assetId_get(directive: DirectiveNode, attrs: Dict[str, Any]) -> Optional[str]:
    """Asset id from the label, else from {id}"""
    label = quotes_strip((directive.label or '').strip())
    return label or attrs.get('id') or None


def mediaElement_emit(directive: DirectiveNode, parent: Node, index: int, props: Dict[str, Any]) -> int:
    LOG(f"media: {directive.name} {props}", level=3)
    return indentation_replace(directive, parent, index, [RenderNode(tag=directive.name, props=props)])


def preload_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    """Ask the host to cache an audio track or image (preloadAudio / preloadImage)"""
    attrs = mediaAttrs_extract(directive, ASSET_SCHEMA, transformer)
    asset_id = assetId_get(directive, attrs)
    src = attrs.get('src')
    if not asset_id or not src:
        raise DirectiveError(f"{directive.name} directive requires an id/label and src")
    return mediaElement_emit(directive, parent, index, {'id': asset_id, 'src': src})


def sound_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    """
    Play a sound effect.

    The track is the label or {id}; without either, {src} doubles as the id.
    """
    attrs = mediaAttrs_extract(directive, SOUND_SCHEMA, transformer)
    track = assetId_get(directive, attrs) or attrs.get('src')
    if not track:
        raise DirectiveError("sound directive requires id or src")
    props: Dict[str, Any] = {'id': track}
    if attrs.get('src'):
        props['src'] = attrs['src']
    if 'volume' in attrs:
        props['volume'] = volume_clamp(attrs['volume'])
    if 'delay' in attrs:
        props['delay'] = max(attrs['delay'], 0)
    return mediaElement_emit(directive, parent, index, props)


def bgm_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    """
    Start or stop background music.

    Tracks loop unless loop=false; {stop} ends the current track, fading
    out over {fade} milliseconds when given.
    """
    attrs = mediaAttrs_extract(directive, BGM_SCHEMA, transformer)
    props: Dict[str, Any]
    if attrs.get('stop') is True:
        props = {'stop': True}
    else:
        track = assetId_get(directive, attrs) or attrs.get('src')
        if not track:
            raise DirectiveError("bgm directive requires id or src")
        props = {'id': track, 'loop': attrs.get('loop') is not False}
        if attrs.get('src'):
            props['src'] = attrs['src']
        if 'volume' in attrs:
            props['volume'] = volume_clamp(attrs['volume'])
    if 'fade' in attrs:
        props['fade'] = max(attrs['fade'], 0)
    return mediaElement_emit(directive, parent, index, props)


def volume_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    """Set the global music and effect volumes; a directive setting neither is dropped"""
    attrs = mediaAttrs_extract(directive, VOLUME_SCHEMA, transformer)
    props = {name: volume_clamp(attrs[name]) for name in ('bgm', 'sfx') if name in attrs}
    if not props:
        return node_remove(parent, index)
    return mediaElement_emit(directive, parent, index, props)
