"""
Localization directive handlers

    ::lang[fr]
    ::translations[fr]{ui:greeting="Bonjour"}
    :t[ui:greeting]      :t[apples]{count=3 fallback="Apples"}

All translation storage lives behind the Translator collaborator.
"""

import json
import re
from typing import Any, Dict, Optional

from ...models.attributes import AttributeSpec
from ...models.directives import RESERVED_ATTRIBUTE_ERROR
from ...models.nodes import DirectiveKind, DirectiveNode, Node, RenderNode, label_get, text_make
from ..attributes import DirectiveError, attributes_extract, directiveKind_require, quoted_extract
from ..expression import ExpressionError, js_string
from ..i18n import locale_isValid
from ..transformer import indentation_replace, node_remove


TRANSLATION_KEY = re.compile(r'^[A-Za-z_$][A-Za-z0-9_$]*(?::[A-Za-z0-9_.$-]+)?$')
COMPOUND_KEY = re.compile(r'^([^:]+):(.+)$')

T_SCHEMA = {
    'count': AttributeSpec('number'),
    'fallback': AttributeSpec('string'),
    'ns': AttributeSpec('string'),
    'className': AttributeSpec('string', expression=False),
    'style': AttributeSpec('string', expression=False),
}

TRANSLATIONS_USAGE = 'Translations directive expects [locale]{ns:key="value"}'


def lang_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    directiveKind_require(directive, DirectiveKind.LEAF)
    locale = label_get(directive).strip()
    if locale and locale_isValid(locale) and transformer.translator.locale != locale:
        transformer.translator.changeLocale(locale)
    return node_remove(parent, index)


def translations_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    directiveKind_require(directive, DirectiveKind.LEAF)
    locale = label_get(directive).strip()
    attrs = directive.attributes or {}
    if not locale or not attrs:
        raise DirectiveError(TRANSLATIONS_USAGE)
    if len(attrs) != 1:
        raise DirectiveError("Translations directive accepts only one namespace:key pair")
    compound, raw = next(iter(attrs.items()))
    match = COMPOUND_KEY.match(compound)
    if not match or not isinstance(raw, str):
        raise DirectiveError(TRANSLATIONS_USAGE)
    value = quoted_extract(raw)
    transformer.translator.addResource(locale, match.group(1), match.group(2), raw if value is None else value)
    return node_remove(parent, index)


def tVars_evaluate(raw_attrs: Dict[str, Any], transformer: Any) -> Dict[str, Any]:
    """Remaining :t attributes become interpolation variables"""
    values: Dict[str, Any] = {}
    for name, raw in raw_attrs.items():
        if raw is None:
            continue
        if not isinstance(raw, str):
            values[name] = raw
            continue
        try:
            value = transformer.evaluator.evaluate(raw, transformer.scope())
        except ExpressionError:
            transformer.error_add(f"Failed to evaluate t directive var: {raw}")
            quoted = quoted_extract(raw)
            values[name] = raw if quoted is None else quoted
            continue
        values[name] = raw if value is None else value
    return values


def tFallback_evaluate(raw: Any, transformer: Any) -> Optional[str]:
    if not isinstance(raw, str):
        return None
    trimmed = raw.strip()
    quoted = quoted_extract(trimmed)
    inner = trimmed if quoted is None else quoted
    if quoted is not None or '${' in trimmed:
        return transformer.evaluator.string_interpolate(inner, transformer.scope())
    try:
        value = transformer.evaluator.evaluate(inner, transformer.scope())
    except ExpressionError:
        transformer.error_add(f"Failed to evaluate t directive fallback: {raw}")
        return inner
    return None if value is None else js_string(value)


def t_handle(directive: DirectiveNode, parent: Node, index: int, transformer: Any) -> int:
    """
    Replace :t[key] with a translate element holding the translated text.

    The label is a key, an "ns:key" pair, or an expression producing one.
    Inside a [[link]] the text is merged into the surrounding link text.
    """
    raw = label_get(directive).strip()
    if not raw:
        return node_remove(parent, index)
    scope = transformer.scope()
    result = attributes_extract(directive, T_SCHEMA, scope, transformer.evaluator)
    attrs = result.attrs
    ns: Optional[str] = attrs.get('ns')
    key: Optional[str] = None
    props: Dict[str, Any] = {}
    if TRANSLATION_KEY.match(raw):
        head, _, tail = raw.partition(':')
        key = tail or head
        if tail:
            ns = head
    else:
        props['data-i18n-expr'] = raw
        try:
            value = transformer.evaluator.evaluate(raw, scope)
        except ExpressionError:
            transformer.error_add(f"Failed to evaluate t directive key expression: {raw}")
            value = None
        if isinstance(value, str):
            if not ns and ':' in value:
                ns, key = value.split(':', 1)
            else:
                key = value

    raw_attrs = dict(directive.attributes or {})
    if 'class' in raw_attrs:
        transformer.error_add(RESERVED_ATTRIBUTE_ERROR)
        raw_attrs.pop('class')
    fallback = tFallback_evaluate(raw_attrs.get('fallback'), transformer)
    for name in T_SCHEMA:
        raw_attrs.pop(name, None)
    variables = tVars_evaluate(raw_attrs, transformer)

    text = ''
    if key:
        text = transformer.translator.translate(
            key, ns=ns, count=attrs.get('count'), vars=variables, fallback=fallback,
        )

    before = parent.children[index - 1] if index > 0 else None
    after = parent.children[index + 1] if index + 1 < len(parent.children) else None
    if (
        key and before is not None and after is not None
        and before.type == 'text' and (before.value or '').endswith('[[')
        and after.type == 'text' and ']]' in (after.value or '')
    ):
        before.value = (before.value or '') + text + (after.value or '')
        del parent.children[index:index + 2]
        return index

    if ns:
        props['data-i18n-ns'] = ns
    if key:
        props['data-i18n-key'] = key
    if 'count' in attrs:
        props['data-i18n-count'] = attrs['count']
    if variables:
        props['data-i18n-vars'] = json.dumps(variables, default=str)
    if fallback is not None:
        props['data-i18n-fallback'] = fallback
    if attrs.get('className'):
        props['className'] = attrs['className']
    if attrs.get('style'):
        props['style'] = attrs['style']
    node = RenderNode(tag='translate', props=props, children=[text_make(text)] if text else [])
    return indentation_replace(directive, parent, index, [node])
