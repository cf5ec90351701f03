"""
Bidirectional vocabulary tables between canonical and native values.
"""

from typing import Dict, Generic, List, Optional, TypeVar

from catalog.exceptions import VocabularyError

T = TypeVar("T")


class Vocabulary(Generic[T]):
    """
    One canonical <-> native table.

    to_native / to_canonical raise VocabularyError for unmapped values;
    get_canonical returns None instead, for fields (genres) where unknown
    values are dropped.
    """

    def __init__(self, field: str, mapping: Dict[T, str]):
        self.field = field
        self._forward = dict(mapping)
        self._inverse = {native: canonical for canonical, native in mapping.items()}

    @property
    def accepted(self) -> List[T]:
        return list(self._forward)

    def to_native(self, value: T) -> str:
        try:
            return self._forward[value]
        except KeyError:
            raise VocabularyError(self.field, value) from None

    def to_canonical(self, value: str) -> T:
        try:
            return self._inverse[value]
        except KeyError:
            raise VocabularyError(self.field, value) from None

    def get_canonical(self, value: str) -> Optional[T]:
        return self._inverse.get(value)
