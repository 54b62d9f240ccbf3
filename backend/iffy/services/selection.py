"""
Gift selection procedure.

One submission runs strictly in sequence: load the catalog, classify the
photo, pick a gift (model pick or a fallback), upload the normalized photo,
persist the record and kick off stylization. Any failure before persistence
still produces a persisted ``failed`` record so the client has an id to poll.
"""
from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional, Sequence

from ..config import settings
from ..exceptions import (
    CatalogEntryMissing,
    GenerationTriggerError,
    IffyBaseException,
    NoCandidateAvailable,
    PersistenceError,
    PersistenceFailed,
    QuotaExceededError,
)
from ..inference.recommend import build_recommendation_prompt
from ..inference.stylize import style_prompt_for
from ..logger import logger
from ..profiles import FALLBACK_DEFAULT, FALLBACK_FIRST_CANDIDATE, Commentary, DeploymentProfile
from ..schemas import (
    AnalysisResult,
    CatalogEntry,
    IffyErrorPayload,
    IffyRecord,
    IffyStatus,
    RecommendationResult,
)

Analyzer = Callable[[bytes, str], Awaitable[AnalysisResult]]
Recommender = Callable[[str], Awaitable[RecommendationResult]]
Trigger = Callable[[str], Awaitable[None]]

DEFAULT_DESCRIPTION = "analysis failed"
DEFAULT_GIFT_NAME = "🤖"
DEFAULT_HUMOR = "The photo was so cute the AI's heart skipped a beat... recommendations are taking a short break!"


@dataclass(frozen=True)
class GiftChoice:
    gift_name: str
    brand: str
    purchase_link: str
    product_image_url: str
    reason: str
    humor: str
    # "model", "default" or "first_candidate"
    source: str


def find_entry(entries: Sequence[CatalogEntry], name: str) -> Optional[CatalogEntry]:
    return next((e for e in entries if e.name == name), None)


def match_candidate(candidates: Sequence[CatalogEntry], selected_name: str) -> Optional[CatalogEntry]:
    wanted = selected_name.strip()
    return next((c for c in candidates if c.name and c.name.strip() == wanted), None)


def filter_candidates(entries: Sequence[CatalogEntry], bracket: str) -> List[CatalogEntry]:
    return [e for e in entries if e.age_bracket == bracket]


def _from_entry(entry: CatalogEntry, commentary: Commentary, source: str, brand_default: str = "", **fmt) -> GiftChoice:
    return GiftChoice(
        gift_name=entry.name,
        brand=entry.brand or brand_default,
        purchase_link=entry.purchase_link or "",
        product_image_url=entry.image_url or "",
        reason=commentary.reason.format(**fmt) if fmt else commentary.reason,
        humor=commentary.humor,
        source=source,
    )


def default_choice(entries: Sequence[CatalogEntry], profile: DeploymentProfile, commentary: Commentary, **fmt) -> GiftChoice:
    entry = find_entry(entries, profile.default_entry_name)
    if entry is None:
        logger.error(f"Default entry '{profile.default_entry_name}' is missing from the gift sheet")
        raise CatalogEntryMissing(profile.default_entry_name)
    return _from_entry(entry, commentary, FALLBACK_DEFAULT, profile.default_brand, **fmt)


def resolve_mismatch(
    entries: Sequence[CatalogEntry],
    candidates: Sequence[CatalogEntry],
    selected_name: str,
    profile: DeploymentProfile,
) -> GiftChoice:
    """Pick a replacement when the model named a gift outside the candidate list."""
    for step in profile.mismatch_fallback_order:
        if step == FALLBACK_DEFAULT:
            entry = find_entry(entries, profile.default_entry_name)
            if entry is not None:
                logger.warning(f"Substituting default entry '{entry.name}' for '{selected_name}'")
                return _from_entry(entry, profile.model_lost_its_way, FALLBACK_DEFAULT, profile.default_brand)
        elif step == FALLBACK_FIRST_CANDIDATE and candidates:
            logger.warning(f"Substituting first candidate '{candidates[0].name}' for '{selected_name}'")
            return _from_entry(candidates[0], profile.substituted_first_candidate, FALLBACK_FIRST_CANDIDATE)
    raise NoCandidateAvailable(selected_name)


async def select_gift(
    entries: Sequence[CatalogEntry],
    analysis: AnalysisResult,
    profile: DeploymentProfile,
    recommender: Recommender,
) -> GiftChoice:
    if not analysis.is_person:
        logger.info("Subject is not a person, using the default entry")
        return default_choice(entries, profile, profile.not_a_person)

    bracket = profile.age_brackets.resolve(analysis.estimated_age)
    candidates = filter_candidates(entries, bracket)
    logger.info(
        f"Resolved age bracket {bracket}",
        extra={"estimated_age": analysis.estimated_age, "bracket": bracket, "candidates": len(candidates)},
    )

    if not candidates:
        logger.warning(f"No candidates for bracket {bracket}, using the default entry")
        return default_choice(entries, profile, profile.empty_bracket, bracket=bracket)

    prompt = build_recommendation_prompt(candidates, analysis, profile)
    recommendation = await recommender(prompt)

    match = match_candidate(candidates, recommendation.selected_product_name)
    if match is None:
        logger.error(
            f"Model pick '{recommendation.selected_product_name.strip()}' is not a {bracket} candidate",
            extra={"candidates": [c.name for c in candidates]},
        )
        return resolve_mismatch(entries, candidates, recommendation.selected_product_name, profile)

    return GiftChoice(
        gift_name=match.name,
        brand=match.brand or "",
        purchase_link=match.purchase_link or "",
        product_image_url=match.image_url or "",
        reason=recommendation.reason,
        humor=recommendation.humor_line,
        source="model",
    )


class GiftSelector:
    def __init__(
        self,
        catalog,
        analyzer: Analyzer,
        recommender: Recommender,
        storage,
        repository,
        trigger: Trigger,
        profile: DeploymentProfile,
        fallback_image_url: Optional[str] = None,
        mark_failed_on_trigger_error: bool = True,
    ):
        self.catalog = catalog
        self.analyzer = analyzer
        self.recommender = recommender
        self.storage = storage
        self.repository = repository
        self.trigger = trigger
        self.profile = profile
        self.fallback_image_url = fallback_image_url or settings.FALLBACK_IMAGE_URL
        self.mark_failed_on_trigger_error = mark_failed_on_trigger_error

    async def submit(self, image_bytes: bytes, content_type: str, user_id: Optional[str] = None) -> IffyRecord:
        iffy_id = str(uuid.uuid4())
        log_extra = {"iffy_id": iffy_id, "profile": self.profile.name}

        analysis: Optional[AnalysisResult] = None
        choice: Optional[GiftChoice] = None
        style_prompt = ""
        image_url = self.fallback_image_url
        error: Optional[IffyBaseException] = None

        try:
            entries = await self.catalog.get()
            analysis = await self.analyzer(image_bytes, content_type)
            choice = await select_gift(entries, analysis, self.profile, self.recommender)
            style_prompt = style_prompt_for(analysis.is_person, analysis.estimated_age, analysis.description)
            image_url = await asyncio.to_thread(self.storage.upload_original, image_bytes, content_type)
            logger.info("Initial processing completed", extra={**log_extra, "gift_source": choice.source})
        except QuotaExceededError:
            logger.error("Model quota exceeded, nothing will be saved", extra=log_extra)
            raise
        except IffyBaseException as e:
            logger.error(
                f"Initial processing failed: {e.code} - {e.message}",
                extra={**log_extra, "error_code": e.code},
            )
            error = e

        record = IffyRecord(
            id=iffy_id,
            estimated_age=analysis.estimated_age if analysis else 0,
            is_person=analysis.is_person if analysis else False,
            description=analysis.description if analysis else DEFAULT_DESCRIPTION,
            style_prompt=style_prompt,
            gift_name=choice.gift_name if choice else DEFAULT_GIFT_NAME,
            brand=choice.brand if choice else "",
            gift_image_url=image_url,
            product_image_url=choice.product_image_url if choice else "",
            commentary=f"Initial processing failed: {error.message}" if error else choice.reason,
            purchase_link=choice.purchase_link if choice else "",
            humor_line=choice.humor if choice and not error else DEFAULT_HUMOR,
            is_error=error is not None,
            user_id=user_id,
            status=IffyStatus.failed if error else IffyStatus.processing,
        )

        try:
            saved = await self.repository.create(record)
        except PersistenceError as e:
            logger.error(f"Failed to persist iffy: {e.message}", extra=log_extra)
            payload = IffyErrorPayload(
                id=iffy_id,
                commentary=f"Final processing failed: {e.message}",
                updated_at=datetime.now(timezone.utc),
            )
            raise PersistenceFailed(payload.to_json(), e)

        logger.info(f"Saved iffy with status {saved.status.value}", extra=log_extra)

        if saved.status == IffyStatus.processing:
            await self._trigger_generation(saved.id)

        return saved

    async def _trigger_generation(self, iffy_id: str) -> None:
        try:
            await self.trigger(iffy_id)
            logger.info("Stylization triggered", extra={"iffy_id": iffy_id})
            return
        except GenerationTriggerError as e:
            logger.error(f"Failed to trigger stylization: {e.message}", extra={"iffy_id": iffy_id})
            message = e.message
        except Exception as e:
            logger.error(f"Stylization trigger raised {type(e).__name__}: {e}", extra={"iffy_id": iffy_id})
            message = str(e)

        if not self.mark_failed_on_trigger_error:
            return
        try:
            await self.repository.mark_failed(iffy_id, f"Image generation could not start: {message}")
        except PersistenceError as e:
            logger.error(f"Failed to mark iffy as failed: {e.message}", extra={"iffy_id": iffy_id})
