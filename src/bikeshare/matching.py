"""Approximate matching of free-text input against canonical records.

Submitters type bike names by hand, so "Trek 100" may arrive as "trek100 "
or "Trek1OO". The fuzzy matcher reconciles such input with the canonical
values loaded from the store:

- Numbers compare by exact numeric equality.
- Strings are trimmed and lower-cased. Equal strings match; strings shorter
  than ``MIN_FUZZY_LENGTH`` must match exactly; otherwise the Levenshtein
  distance divided by the longer length must stay below the threshold.
- Anything else (None, mixed types) never matches.

All functions here are deterministic and side-effect-free.
"""

from numbers import Real
from typing import Any, Optional, Sequence, Tuple

from bikeshare.state.models import Bike, User

DEFAULT_FUZZY_THRESHOLD = 0.3

# Below this length a single typo is too large a share of the string
MIN_FUZZY_LENGTH = 3


def normalize_text(value: Any) -> str:
    """Trim and lower-case a value for comparison."""
    if value is None:
        return ""
    return str(value).strip().lower()


def levenshtein_distance(a: str, b: str) -> int:
    """Compute the edit distance between two strings.

    Classic dynamic-programming formulation with unit cost for insertion,
    deletion and substitution. Only two rows are kept in memory.

    Example:
        >>> levenshtein_distance("kitten", "sitting")
        3
    """
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + cost,
                )
            )
        previous = current
    return previous[-1]


def distance_ratio(a: str, b: str) -> float:
    """Edit distance normalized by the longer string's length."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 0.0
    return levenshtein_distance(a, b) / longest


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def fuzzy_match(
    target: Any,
    candidate: Any,
    exact: bool = False,
    threshold: float = DEFAULT_FUZZY_THRESHOLD,
) -> bool:
    """Test whether ``candidate`` approximately equals ``target``.

    Args:
        target: The canonical value (e.g. a bike name from the store).
        candidate: The submitted value.
        exact: Require equality after normalization for strings.
        threshold: Maximum distance ratio (exclusive) for a fuzzy match.

    Returns:
        True if the values match under the rules described in the module
        docstring.

    Example:
        >>> fuzzy_match("Trek100", "trek1oo")
        True
        >>> fuzzy_match("ab", "abc")
        False
    """
    if target is None or candidate is None:
        return False

    if _is_number(target) and _is_number(candidate):
        return target == candidate

    if not isinstance(target, str) or not isinstance(candidate, str):
        return False

    a = normalize_text(target)
    b = normalize_text(candidate)

    if exact:
        return a == b
    if a == b:
        return True
    if len(a) < MIN_FUZZY_LENGTH or len(b) < MIN_FUZZY_LENGTH:
        return False

    return distance_ratio(a, b) < threshold


def find_bike(
    bikes: Sequence[Bike],
    identifier: str,
    threshold: float = DEFAULT_FUZZY_THRESHOLD,
) -> Optional[Bike]:
    """Resolve a submitted bike identifier to a loaded bike record.

    An exact normalized match on the bike hash or name wins outright. When
    none exists, the closest fuzzy candidate is chosen; ties go to the bike
    that appears first in the table.
    """
    wanted = normalize_text(identifier)
    if not wanted:
        return None

    for bike in bikes:
        if wanted in (normalize_text(bike.bike_hash), normalize_text(bike.name)):
            return bike

    best: Optional[Tuple[float, Bike]] = None
    for bike in bikes:
        for known in (bike.bike_hash, bike.name):
            if not fuzzy_match(known, identifier, threshold=threshold):
                continue
            ratio = distance_ratio(normalize_text(known), wanted)
            if best is None or ratio < best[0]:
                best = (ratio, bike)
    return best[1] if best else None


def find_user(users: Sequence[User], email: str) -> Optional[User]:
    """Look up a user by email; emails never match fuzzily."""
    wanted = normalize_text(email)
    if not wanted:
        return None
    for user in users:
        if user.email == wanted:
            return user
    return None
