import pytest
from pydantic import ValidationError

from iffy.profiles import GENERAL, SPONSOR, AgeBracket, BracketTable, get_profile, resolve_age_bracket


@pytest.mark.parametrize(
    "age, expected",
    [
        (0, "0-5"),
        (5, "0-5"),
        (6, "6-10"),
        (7, "6-10"),
        (10, "6-10"),
        (11, "11-20"),
        (25, "21-30"),
        (70, "61-70"),
        (71, "71-"),
        (80, "71-"),
        (81, "other"),
        (130, "other"),
    ],
)
def test_general_table_boundaries(age, expected):
    assert GENERAL.age_brackets.resolve(age) == expected


@pytest.mark.parametrize(
    "age, expected",
    [(0, "0-20"), (20, "0-20"), (21, "21-40"), (60, "41-60"), (61, "61-"), (80, "61-"), (81, "other")],
)
def test_sponsor_table_boundaries(age, expected):
    assert SPONSOR.age_brackets.resolve(age) == expected


@pytest.mark.parametrize("table", [GENERAL.age_brackets, SPONSOR.age_brackets])
def test_mapping_is_total_and_monotonic(table):
    order = table.labels
    previous = 0
    for age in range(0, 200):
        label = table.resolve(age)
        assert label in order
        position = order.index(label)
        assert position >= previous
        previous = position
    assert table.resolve(10_000) == table.other_label


def test_negative_age_is_rejected():
    with pytest.raises(ValueError):
        resolve_age_bracket(-1, GENERAL.age_brackets.brackets)


def test_bracket_table_rejects_unordered_bounds():
    with pytest.raises(ValidationError):
        BracketTable(brackets=[AgeBracket(upper_bound=20, label="a"), AgeBracket(upper_bound=10, label="b")])


def test_bracket_table_rejects_duplicate_labels():
    with pytest.raises(ValidationError):
        BracketTable(
            brackets=[AgeBracket(upper_bound=10, label="kid")],
            other_label="kid",
        )


def test_get_profile_applies_sheet_index_override():
    profile = get_profile("general", sheet_index=3)
    assert profile.sheet_index == 3
    assert GENERAL.sheet_index == 0


def test_get_profile_unknown_name():
    with pytest.raises(ValueError):
        get_profile("nope")
