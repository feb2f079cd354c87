from __future__ import annotations

from lopper.scope import PathScope, first_match, normalize_patterns


def test_normalize_patterns_trims_and_dedupes_in_order() -> None:
    assert normalize_patterns([" src/** ", "lib/**", "src/**", "", "  "]) == ("src/**", "lib/**")
    assert normalize_patterns(None) == ()


def test_merge_replaces_non_empty_lists_wholesale() -> None:
    low = PathScope.from_lists(include=["src/**", "lib/**"], exclude=["**/vendor/**"])
    high = PathScope.from_lists(include=["app/**"])
    merged = low.merge(high)
    assert merged.include == ("app/**",)
    assert merged.exclude == ("**/vendor/**",)


def test_merge_with_empty_higher_keeps_base() -> None:
    low = PathScope.from_lists(include=["src/**"])
    assert low.merge(PathScope()) == low
    assert PathScope().is_empty()
    assert not low.is_empty()


def test_matches_include_and_exclude() -> None:
    scope = PathScope.from_lists(include=["src/**"], exclude=["**/*_test.go"])
    assert scope.matches("src/a.go")
    assert scope.matches("src/nested/deep/b.go")
    assert not scope.matches("src/x/a_test.go")
    assert not scope.matches("docs/readme.md")


def test_empty_scope_keeps_everything() -> None:
    assert PathScope().matches("anything/at/all.txt")


def test_single_star_stays_in_segment() -> None:
    assert first_match("a/b.py", ["*.py"]) is None
    assert first_match("b.py", ["*.py"]) == "*.py"
    assert first_match("a/b.py", ["**/*.py"]) == "**/*.py"
    assert first_match("a/bc.py", ["a/b?.py"]) == "a/b?.py"


def test_windows_separators_are_normalized_for_matching() -> None:
    scope = PathScope.from_lists(exclude=["vendor/**"])
    assert not scope.matches("vendor\\pkg\\mod.go")
