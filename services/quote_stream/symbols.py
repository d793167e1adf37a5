"""
Symbol canonicalization

Turns free-text user input ("aapl, msft  TSLA") into an ordered, de-duplicated
set of canonical ticker tokens.
"""

import re
from functools import lru_cache
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

# Any run of whitespace and/or commas separates tokens
_SEPARATORS = re.compile(r"[\s,]+")


def normalize_symbol(token: str) -> Optional[str]:
    """Trim and upper-case one token; None when nothing is left"""
    token = token.strip().upper()
    return token or None


class SymbolSet:
    """
    Immutable set of canonical symbols that remembers first-seen order.

    Membership is backed by a dict keyed on the symbol, iteration by a tuple
    holding the insertion order. Equality compares membership only.
    """

    __slots__ = ("_index", "_order")

    def __init__(self, symbols: Iterable[str] = ()):
        index: Dict[str, int] = {}
        order: List[str] = []
        for raw in symbols:
            symbol = normalize_symbol(raw)
            if symbol is None or symbol in index:
                continue
            index[symbol] = len(order)
            order.append(symbol)
        self._index = index
        self._order: Tuple[str, ...] = tuple(order)

    def __contains__(self, symbol: object) -> bool:
        if not isinstance(symbol, str):
            return False
        return symbol.strip().upper() in self._index

    def __iter__(self) -> Iterator[str]:
        return iter(self._order)

    def __len__(self) -> int:
        return len(self._order)

    def __bool__(self) -> bool:
        return bool(self._order)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SymbolSet):
            return self._index.keys() == other._index.keys()
        if isinstance(other, (set, frozenset)):
            return self._index.keys() == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(frozenset(self._index))

    def __repr__(self) -> str:
        return f"SymbolSet({list(self._order)!r})"

    def union(self, other: Iterable[str]) -> "SymbolSet":
        """Own symbols first, then any new ones from `other` in their order"""
        return SymbolSet([*self._order, *other])

    def difference(self, other: Iterable[str]) -> "SymbolSet":
        removed = SymbolSet(other)
        return SymbolSet(s for s in self._order if s not in removed)

    def to_list(self) -> List[str]:
        """Ordered projection for display and wire framing"""
        return list(self._order)


EMPTY = SymbolSet()


@lru_cache(maxsize=256)
def canonicalize(raw: str) -> SymbolSet:
    """
    Parse raw user input into a SymbolSet.

    Total over any string: empty or separator-only input yields an empty set.
    Results are memoized on the raw text; SymbolSet is immutable so sharing is safe.
    """
    if not raw:
        return EMPTY
    return SymbolSet(_SEPARATORS.split(raw))
