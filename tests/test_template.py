"""Tests for display-text template rendering."""

from __future__ import annotations

import pytest

from zotsync.constants import DEFAULT_DESCRIPTION_TEMPLATE
from zotsync.models import Creator
from zotsync.template import (
    computed_variables,
    format_creator_list,
    prune_separators,
    render,
)


def _author(first: str, last: str) -> Creator:
    return Creator(first_name=first, last_name=last, creator_type="author")


def _editor(first: str, last: str) -> Creator:
    return Creator(first_name=first, last_name=last, creator_type="editor")


# ---------------------------------------------------------------------------
# Creator aggregation
# ---------------------------------------------------------------------------


class TestCreatorList:
    def test_empty(self):
        assert format_creator_list([]) == ""

    def test_single(self):
        assert format_creator_list([_author("Ayn", "Rand")]) == "Ayn Rand"

    def test_two_joined_with_comma(self):
        creators = [_author("Ayn", "Rand"), _author("Leonard", "Peikoff")]
        assert format_creator_list(creators) == "Ayn Rand, Leonard Peikoff"

    def test_three_or_more_is_et_al(self):
        creators = [
            _author("Ayn", "Rand"),
            _author("Leonard", "Peikoff"),
            _author("Harry", "Binswanger"),
        ]
        assert format_creator_list(creators) == "Ayn Rand et al."

    def test_single_field_name(self):
        assert format_creator_list([Creator(name="ARI Press")]) == "ARI Press"

    def test_nameless_creators_are_skipped(self):
        assert format_creator_list([Creator(), _author("Ayn", "Rand")]) == "Ayn Rand"


# ---------------------------------------------------------------------------
# Computed variables
# ---------------------------------------------------------------------------


class TestComputedVariables:
    def test_authors_and_editors_are_separated(self, make_item, personal):
        item = make_item(
            "K1",
            creators=[_author("A", "One"), _editor("E", "Two"), _author("B", "Three")],
        )
        values = computed_variables(item, personal)
        assert values["authors"] == "A One, B Three"
        assert values["editors"] == "E Two"
        assert values["creators"] == "A One et al."
        assert values["authorsCount"] == "2"
        assert values["editorsCount"] == "1"
        assert values["creatorsCount"] == "3"

    def test_untyped_creator_counts_as_author(self, make_item, personal):
        item = make_item("K1", creators=[Creator(first_name="No", last_name="Role")])
        assert computed_variables(item, personal)["authors"] == "No Role"

    def test_first_creator_ignores_role(self, make_item, personal):
        item = make_item(
            "K1",
            creators=[_editor("E", "One"), _author("A", "Two"), _author("B", "Three")],
        )
        assert computed_variables(item, personal)["firstCreator"] == "E One, A Two"

    def test_year_is_leading_four_characters(self, make_item, personal):
        item = make_item("K1", date="1957-10-10")
        assert computed_variables(item, personal)["year"] == "1957"

    def test_year_empty_without_date(self, make_item, personal):
        assert computed_variables(make_item("K1"), personal)["year"] == ""

    def test_library_name(self, make_item, group):
        assert computed_variables(make_item("K1"), group)["library"] == "Reading Group"


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


class TestRender:
    def test_field_lookup(self, make_item, personal):
        item = make_item("K1", "Atlas Shrugged")
        assert render("{{ title }}", item, personal) == "Atlas Shrugged"

    def test_whitespace_inside_braces_is_optional(self, make_item, personal):
        item = make_item("K1", "Atlas Shrugged")
        assert render("{{title}}", item, personal) == "Atlas Shrugged"

    def test_arbitrary_catalog_field(self, make_item, personal):
        item = make_item("K1", DOI="10.1000/xyz")
        assert render("doi:{{ DOI }}", item, personal) == "doi:10.1000/xyz"

    def test_unknown_token_renders_empty(self, make_item, personal):
        item = make_item("K1", "T")
        assert render("{{ title }}{{ nonsense }}", item, personal) == "T"

    def test_computed_name_wins_over_field(self, make_item, personal):
        item = make_item("K1", date="2021-03-04", year="ignored")
        assert render("{{ year }}", item, personal) == "2021"

    def test_default_description_full(self, make_item, personal):
        item = make_item(
            "K1",
            creators=[_author("Ayn", "Rand")],
            publicationTitle="The Objectivist",
            date="1966-01",
        )
        assert (
            render(DEFAULT_DESCRIPTION_TEMPLATE, item, personal)
            == "Ayn Rand · The Objectivist · 1966"
        )

    def test_default_description_drops_empty_segments(self, make_item, personal):
        item = make_item("K1", creators=[_author("Ayn", "Rand")], date="1966")
        assert render(DEFAULT_DESCRIPTION_TEMPLATE, item, personal) == "Ayn Rand · 1966"

    def test_default_description_all_empty(self, make_item, personal):
        assert render(DEFAULT_DESCRIPTION_TEMPLATE, make_item("K1"), personal) == ""

    def test_render_is_pure(self, make_item, personal):
        item = make_item("K1", "T", date="2000")
        first = render(DEFAULT_DESCRIPTION_TEMPLATE, item, personal)
        assert render(DEFAULT_DESCRIPTION_TEMPLATE, item, personal) == first


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("a · b · c", "a · b · c"),
        (" · b · ", "b"),
        ("a ·  · c", "a · c"),
        (" ·  · ", ""),
    ],
)
def test_prune_separators(text, expected):
    assert prune_separators(text) == expected
