"""
Deployment profiles.

The service runs as two deployments that differ only in policy: which sheet
holds the catalog, how its headers are named, the age-bracket table, the
designated default entry and the copy shown when we fall back to it.
"""
from __future__ import annotations

from typing import Dict, List, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .config import settings

FALLBACK_DEFAULT = "default"
FALLBACK_FIRST_CANDIDATE = "first_candidate"


class AgeBracket(BaseModel):
    model_config = ConfigDict(frozen=True)

    upper_bound: int = Field(ge=0)
    label: str = Field(min_length=1)


class BracketTable(BaseModel):
    """Ordered inclusive upper bounds plus a catch-all label."""

    brackets: List[AgeBracket]
    other_label: str = "other"

    @model_validator(mode="after")
    def _validate_order(self) -> "BracketTable":
        bounds = [b.upper_bound for b in self.brackets]
        if any(lo >= hi for lo, hi in zip(bounds, bounds[1:])):
            raise ValueError("bracket upper bounds must be strictly increasing")
        labels = [b.label for b in self.brackets] + [self.other_label]
        if len(set(labels)) != len(labels):
            raise ValueError("bracket labels must be unique")
        return self

    def resolve(self, age: int) -> str:
        return resolve_age_bracket(age, self.brackets, self.other_label)

    @property
    def labels(self) -> List[str]:
        return [b.label for b in self.brackets] + [self.other_label]


def resolve_age_bracket(age: int, brackets: List[AgeBracket], other_label: str = "other") -> str:
    if age < 0:
        raise ValueError(f"age must be non-negative, got {age}")
    for bracket in brackets:
        if age <= bracket.upper_bound:
            return bracket.label
    return other_label


def bracket_table(pairs: List[Tuple[int, str]], other_label: str = "other") -> BracketTable:
    return BracketTable(
        brackets=[AgeBracket(upper_bound=bound, label=label) for bound, label in pairs],
        other_label=other_label,
    )


class ColumnMap(BaseModel):
    """Sheet header names for each CatalogEntry field."""

    brand: str = "brand"
    name: str = "name"
    description: str = "description"
    age_bracket: str = "age_group"
    purchase_link: str = "product_link"
    image_url: str = "product_img"


class Commentary(BaseModel):
    reason: str
    humor: str


class DeploymentProfile(BaseModel):
    name: str
    sheet_index: int = 0
    columns: ColumnMap = Field(default_factory=ColumnMap)
    age_brackets: BracketTable
    default_entry_name: str
    default_brand: str = ""
    # Tried in order when the model names a gift that is not a candidate.
    mismatch_fallback_order: List[str] = Field(
        default_factory=lambda: [FALLBACK_DEFAULT, FALLBACK_FIRST_CANDIDATE]
    )

    not_a_person: Commentary
    # ``{bracket}`` is replaced with the resolved bracket label.
    empty_bracket: Commentary
    model_lost_its_way: Commentary
    substituted_first_candidate: Commentary

    prompt_intro: str
    prompt_guidance: str = ""

    @model_validator(mode="after")
    def _validate_fallback_order(self) -> "DeploymentProfile":
        allowed = {FALLBACK_DEFAULT, FALLBACK_FIRST_CANDIDATE}
        unknown = [step for step in self.mismatch_fallback_order if step not in allowed]
        if unknown:
            raise ValueError(f"unknown fallback steps: {unknown}")
        return self


GENERAL = DeploymentProfile(
    name="general",
    sheet_index=0,
    columns=ColumnMap(
        brand="브랜드",
        name="제품 명",
        description="제품 설명",
        age_bracket="나이대",
        purchase_link="제품 링크",
        image_url="제품 이미지",
    ),
    age_brackets=bracket_table(
        [
            (5, "0-5"),
            (10, "6-10"),
            (20, "11-20"),
            (30, "21-30"),
            (40, "31-40"),
            (50, "41-50"),
            (60, "51-60"),
            (70, "61-70"),
            (80, "71-"),
        ]
    ),
    default_entry_name="CJ나눔재단 기부",
    default_brand="CJ나눔재단",
    not_a_person=Commentary(
        reason="How about giving the joy of sharing on a special day? Pass on a warm heart.",
        humor="Warmth for every being in the world!",
    ),
    empty_bracket=Commentary(
        reason="Even the AI had a hard time picking a gift for the {bracket} age group! "
               "We recommend a donation that shares a warm heart instead.",
        humor="When you can't decide, sharing is the best gift!",
    ),
    model_lost_its_way=Commentary(
        reason="The AI lost its way! Instead of a recommendation, how about a donation?",
        humor="The joy of sharing beats any gift!",
    ),
    substituted_first_candidate=Commentary(
        reason="We couldn't find the AI's pick, so we chose another gift. They'll love this one too!",
        humor="Sometimes an unexpected gift is the best one!",
    ),
    prompt_intro="Here is a list of Children's Day gift candidates:",
)


SPONSOR = DeploymentProfile(
    name="sponsor",
    sheet_index=1,
    columns=ColumnMap(),
    age_brackets=bracket_table([(20, "0-20"), (40, "21-40"), (60, "41-60"), (80, "61-")]),
    default_entry_name="LG QNED TV",
    default_brand="LG",
    not_a_person=Commentary(
        reason="What on earth did you upload? We'll just recommend our default pick, the LG QNED TV.",
        humor="When in doubt, a TV is the answer!",
    ),
    empty_bracket=Commentary(
        reason="Even the AI had a hard time picking a gift for the {bracket} age group! "
               "We recommend our default pick, the LG QNED TV, instead.",
        humor="When in doubt, a TV is the answer!",
    ),
    model_lost_its_way=Commentary(
        reason="The AI lost its way! But there's still a gift: we recommend the LG QNED TV.",
        humor="When in doubt, a TV is the answer!",
    ),
    substituted_first_candidate=Commentary(
        reason="We couldn't find the AI's pick, so we chose another gift. They'll love this one too!",
        humor="When in doubt, a TV is the answer!",
    ),
    prompt_intro=(
        "This is a Children's Day event that judges whether the subject still counts as a child "
        "(20 years old or younger) and replies with a witty answer. Even if they are not a child, "
        "recommend a gift anyway. Here is the list of gift candidates:"
    ),
    prompt_guidance="Pick the one sponsor product that suits the subject best.",
)


PROFILES: Dict[str, DeploymentProfile] = {p.name: p for p in (GENERAL, SPONSOR)}


def get_profile(name: str = None, sheet_index: int = None) -> DeploymentProfile:
    name = name or settings.DEPLOYMENT_PROFILE
    if name not in PROFILES:
        raise ValueError(f"Unknown deployment profile '{name}', expected one of {sorted(PROFILES)}")
    profile = PROFILES[name]
    if sheet_index is None:
        sheet_index = settings.CATALOG_SHEET_INDEX
    if sheet_index is not None and sheet_index != profile.sheet_index:
        profile = profile.model_copy(update={"sheet_index": sheet_index})
    return profile
