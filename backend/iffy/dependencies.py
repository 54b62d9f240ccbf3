"""
FastAPI dependency providers.

Process-wide collaborators (catalog cache, S3 store, task trigger) are built
once; the repository and the selector are per request.
"""
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from .db import get_db
from .inference.recommend import recommend_gift
from .inference.vision import analyze_image
from .profiles import DeploymentProfile, get_profile
from .services.catalog import CatalogCache, SheetCatalogSource
from .services.generation import CeleryGenerationTrigger
from .services.repository import IffyRepository
from .services.selection import GiftSelector
from .services.storage import BlobStore


@lru_cache(maxsize=1)
def get_deployment_profile() -> DeploymentProfile:
    return get_profile()


@lru_cache(maxsize=1)
def get_catalog_cache() -> CatalogCache:
    return CatalogCache(SheetCatalogSource(get_deployment_profile()))


@lru_cache(maxsize=1)
def get_blob_store() -> BlobStore:
    return BlobStore()


@lru_cache(maxsize=1)
def get_generation_trigger() -> CeleryGenerationTrigger:
    return CeleryGenerationTrigger()


async def get_repository(db: AsyncSession = Depends(get_db)) -> IffyRepository:
    return IffyRepository(db)


async def get_gift_selector(repository: IffyRepository = Depends(get_repository)) -> GiftSelector:
    return GiftSelector(
        catalog=get_catalog_cache(),
        analyzer=analyze_image,
        recommender=recommend_gift,
        storage=get_blob_store(),
        repository=repository,
        trigger=get_generation_trigger(),
        profile=get_deployment_profile(),
    )
