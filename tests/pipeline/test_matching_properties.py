"""Property-based tests for the fuzzy matcher.

Testing Configuration:
- Library: Hypothesis (Python)
- Minimum iterations: 100 per property test
"""

from hypothesis import given, settings, strategies as st

from bikeshare.matching import distance_ratio, fuzzy_match, levenshtein_distance

text = st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789 -", max_size=20)
non_blank = text.filter(lambda s: s.strip())


@settings(max_examples=100)
@given(value=non_blank)
def test_fuzzy_match_is_reflexive(value: str):
    assert fuzzy_match(value, value) is True


@settings(max_examples=100)
@given(value=non_blank, pad_left=st.integers(0, 3), pad_right=st.integers(0, 3))
def test_case_and_surrounding_whitespace_never_matter(value, pad_left, pad_right):
    candidate = " " * pad_left + value.upper() + " " * pad_right
    assert fuzzy_match(value, candidate) is True
    assert fuzzy_match(value, candidate, exact=True) is True


@settings(max_examples=100)
@given(a=text, b=text)
def test_fuzzy_match_is_symmetric(a: str, b: str):
    assert fuzzy_match(a, b) == fuzzy_match(b, a)


@settings(max_examples=100)
@given(a=text, b=text)
def test_distance_bounds(a: str, b: str):
    distance = levenshtein_distance(a, b)
    assert abs(len(a) - len(b)) <= distance <= max(len(a), len(b))
    assert 0.0 <= distance_ratio(a, b) <= 1.0


@settings(max_examples=100)
@given(a=text, b=text, c=text)
def test_triangle_inequality(a: str, b: str, c: str):
    assert levenshtein_distance(a, c) <= levenshtein_distance(a, b) + levenshtein_distance(b, c)


@settings(max_examples=100)
@given(a=st.text(alphabet="abc", min_size=0, max_size=2), b=st.text(alphabet="abc", max_size=2))
def test_short_strings_match_only_when_equal(a: str, b: str):
    assert fuzzy_match(a, b) == (a == b)
