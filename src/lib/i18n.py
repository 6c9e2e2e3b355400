"""
Localization collaborator

Directive handlers talk to translations through the Translator protocol;
MemoryTranslator is the in-memory implementation used by the engine when
the host does not supply its own.

Resources are stored per (locale, namespace, key). Lookups fall back from
the active locale to the fallback locale, then to the key itself.

Supported features:
- {{var}} interpolation from the vars mapping
- Plural suffixes: with count given, "key_one" is used for count == 1 and
  "key_other" otherwise, before falling back to the bare key

Example:
    >>> tr = MemoryTranslator(locale="en")
    >>> tr.addResource("en", "ui", "apples_one", "{{count}} apple")
    >>> tr.addResource("en", "ui", "apples_other", "{{count}} apples")
    >>> tr.translate("apples", ns="ui", count=3)
    '3 apples'
"""

import re
import threading
from typing import Any, Dict, Mapping, Optional, Protocol, Tuple, runtime_checkable

from .expression import js_string
from .log import LOG


LOCALE_PATTERN = re.compile(r'^[a-z]{2,3}(-[A-Z][a-zA-Z]{1,7})?$')
_VAR_PATTERN = re.compile(r'\{\{\s*([\w.$-]+)\s*\}\}')

DEFAULT_NAMESPACE = "translation"


@runtime_checkable
class Translator(Protocol):
    """Minimal localization interface used by i18n directives"""

    @property
    def locale(self) -> str:
        ...

    def translate(
        self,
        key: str,
        ns: Optional[str] = None,
        count: Optional[Any] = None,
        vars: Optional[Mapping[str, Any]] = None,
        fallback: Optional[str] = None,
    ) -> str:
        ...

    def changeLocale(self, code: str) -> None:
        ...

    def addResource(self, locale: str, ns: str, key: str, value: str) -> None:
        ...

    def hasResource(self, locale: str, ns: str, key: Optional[str] = None) -> bool:
        ...


class MemoryTranslator:
    """
    Dictionary backed Translator

    Args:
        locale: Active locale code
        fallback_locale: Locale consulted when the active one has no entry
        resources: Optional seed {locale: {ns: {key: value}}}
    """

    def __init__(
        self,
        locale: str = "en",
        fallback_locale: Optional[str] = "en",
        resources: Optional[Mapping[str, Mapping[str, Mapping[str, str]]]] = None,
    ):
        self._locale = locale
        self.fallback_locale = fallback_locale
        self._resources: Dict[Tuple[str, str], Dict[str, str]] = {}
        self._lock = threading.Lock()
        for loc, namespaces in (resources or {}).items():
            for ns, entries in namespaces.items():
                for key, value in entries.items():
                    self.addResource(loc, ns, key, value)

    @property
    def locale(self) -> str:
        return self._locale

    def changeLocale(self, code: str) -> None:
        if code != self._locale:
            LOG(f"i18n: locale {self._locale} -> {code}", level=2)
        self._locale = code

    def addResource(self, locale: str, ns: str, key: str, value: str) -> None:
        with self._lock:
            self._resources.setdefault((locale, ns), {})[key] = value

    def hasResource(self, locale: str, ns: str, key: Optional[str] = None) -> bool:
        with self._lock:
            bundle = self._resources.get((locale, ns))
        if bundle is None:
            return False
        return key is None or key in bundle

    def lookup(self, locale: str, ns: str, key: str) -> Optional[str]:
        with self._lock:
            return self._resources.get((locale, ns), {}).get(key)

    def translate(
        self,
        key: str,
        ns: Optional[str] = None,
        count: Optional[Any] = None,
        vars: Optional[Mapping[str, Any]] = None,
        fallback: Optional[str] = None,
    ) -> str:
        """
        Resolve a key to text in the active locale.

        Args:
            key: Translation key (may be given as "ns:key")
            ns: Namespace; defaults to "translation"
            count: Selects the _one/_other plural form and is exposed as
                   {{count}}
            vars: Interpolation values
            fallback: Text used when no locale has the key

        Returns:
            Translated and interpolated text
        """
        if ns is None and ':' in key:
            ns, key = key.split(':', 1)
        namespace = ns or DEFAULT_NAMESPACE
        candidates = [key]
        if count is not None:
            candidates.insert(0, f"{key}_{'one' if count == 1 else 'other'}")

        text: Optional[str] = None
        locales = [self._locale]
        if self.fallback_locale and self.fallback_locale != self._locale:
            locales.append(self.fallback_locale)
        for loc in locales:
            for candidate in candidates:
                text = self.lookup(loc, namespace, candidate)
                if text is not None:
                    break
            if text is not None:
                break
        if text is None:
            text = fallback if fallback is not None else key

        values: Dict[str, Any] = dict(vars or {})
        if count is not None:
            values.setdefault('count', count)

        def replace(match: 're.Match') -> str:
            name = match.group(1)
            if name not in values or values[name] is None:
                return match.group(0)
            return js_string(values[name])

        return _VAR_PATTERN.sub(replace, text)


def locale_isValid(code: str) -> bool:
    """Basic locale validation: en, en-US, fr, zh-Hans"""
    return bool(LOCALE_PATTERN.match(code or ''))
