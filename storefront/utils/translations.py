"""Locale-keyed values stored as JSON columns."""
from typing import Any, Dict, Iterator, Optional


class Translated:
    """
    Map of locale -> value with an explicit fallback chain.

    Resolution order: requested locale, default locale, first available
    value, then the empty fallback. Nothing is resolved implicitly.
    """

    def __init__(self, values: Optional[Dict[str, Any]] = None, default_locale: str = 'en'):
        self._values = dict(values or {})
        self.default_locale = default_locale

    @classmethod
    def from_column(cls, raw, default_locale: str = 'en') -> 'Translated':
        """Build from a JSON column value (dict, plain string or None)."""
        if raw is None:
            return cls({}, default_locale)
        if isinstance(raw, dict):
            return cls(raw, default_locale)
        # Plain strings are treated as the default locale's value
        return cls({default_locale: raw}, default_locale)

    def resolve(self, locale: Optional[str] = None, fallback: Any = '') -> Any:
        if locale and self._values.get(locale):
            return self._values[locale]
        if self._values.get(self.default_locale):
            return self._values[self.default_locale]
        for value in self._values.values():
            if value:
                return value
        return fallback

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._values)

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __bool__(self) -> bool:
        return any(self._values.values())

    def __repr__(self):
        return f"<Translated({self._values!r})>"
