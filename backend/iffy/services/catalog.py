from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..config import settings
from ..exceptions import CatalogUnavailable
from ..logger import logger
from ..profiles import ColumnMap, DeploymentProfile
from ..schemas import CatalogEntry

SHEETS_SCOPES = ["https://www.googleapis.com/auth/spreadsheets.readonly"]
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"


def _cell(row: Dict[str, Any], header: str) -> str:
    value = row.get(header)
    if value is None:
        return ""
    return str(value)


def rows_to_entries(rows: Iterable[Dict[str, Any]], columns: ColumnMap) -> List[CatalogEntry]:
    """Map raw sheet records to catalog entries, skipping rows without a name."""
    entries: List[CatalogEntry] = []
    for row in rows:
        name = _cell(row, columns.name)
        if not name.strip():
            continue
        entries.append(
            CatalogEntry(
                brand=_cell(row, columns.brand),
                name=name,
                description=_cell(row, columns.description),
                age_bracket=_cell(row, columns.age_bracket).strip(),
                purchase_link=_cell(row, columns.purchase_link),
                image_url=_cell(row, columns.image_url),
            )
        )
    return entries


class SheetCatalogSource:
    """Reads the gift catalog from one worksheet of a Google spreadsheet."""

    def __init__(
        self,
        profile: DeploymentProfile,
        sheet_id: Optional[str] = None,
        service_account_email: Optional[str] = None,
        private_key: Optional[str] = None,
    ):
        self.profile = profile
        self.sheet_id = sheet_id or settings.GIFT_SHEET_ID
        self.service_account_email = service_account_email or settings.GOOGLE_SERVICE_ACCOUNT_EMAIL
        self.private_key = private_key or settings.google_private_key

    def _open_worksheet(self):
        import gspread
        from google.oauth2.service_account import Credentials

        if not (self.sheet_id and self.service_account_email and self.private_key):
            raise CatalogUnavailable("Google Sheets credentials are not configured")

        credentials = Credentials.from_service_account_info(
            {
                "client_email": self.service_account_email,
                "private_key": self.private_key,
                "token_uri": GOOGLE_TOKEN_URI,
            },
            scopes=SHEETS_SCOPES,
        )
        client = gspread.authorize(credentials)
        spreadsheet = client.open_by_key(self.sheet_id)
        worksheet = spreadsheet.get_worksheet(self.profile.sheet_index)
        if worksheet is None:
            raise CatalogUnavailable(f"Worksheet #{self.profile.sheet_index} does not exist")
        return worksheet

    def load(self) -> List[CatalogEntry]:
        started = time.monotonic()
        try:
            worksheet = self._open_worksheet()
            rows = worksheet.get_all_records()
        except CatalogUnavailable:
            raise
        except Exception as e:
            logger.error(f"Failed to load gift sheet: {e}", extra={"sheet_index": self.profile.sheet_index})
            raise CatalogUnavailable(f"Failed to load gift sheet: {e}")

        entries = rows_to_entries(rows, self.profile.columns)
        if not entries:
            raise CatalogUnavailable("Gift sheet returned no rows")

        logger.info(
            f"Loaded {len(entries)} gift entries from sheet",
            extra={
                "sheet_index": self.profile.sheet_index,
                "duration_ms": round((time.monotonic() - started) * 1000, 2),
            },
        )
        return entries


class CatalogCache:
    """
    Value + timestamp + TTL around a catalog source.

    Refreshes are serialized by a lock; a waiter that acquires the lock after
    another refresh re-checks freshness first. A failed refresh keeps serving
    the previous value when there is one.
    """

    def __init__(self, source, ttl_seconds: Optional[int] = None, clock: Callable[[], float] = time.monotonic):
        self.source = source
        self.ttl_seconds = settings.CATALOG_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._entries: Optional[List[CatalogEntry]] = None
        self._loaded_at: Optional[float] = None
        self._lock = asyncio.Lock()

    def _is_fresh(self) -> bool:
        if self._entries is None or self._loaded_at is None or self.ttl_seconds <= 0:
            return False
        return self._clock() - self._loaded_at < self.ttl_seconds

    def invalidate(self) -> None:
        self._entries = None
        self._loaded_at = None

    async def get(self) -> List[CatalogEntry]:
        if self._is_fresh():
            return self._entries

        async with self._lock:
            if self._is_fresh():
                return self._entries
            try:
                entries = await asyncio.to_thread(self.source.load)
                if not entries:
                    raise CatalogUnavailable("Gift catalog is empty")
            except CatalogUnavailable as e:
                if self._entries is not None:
                    logger.warning(f"Catalog refresh failed, serving stale entries: {e.message}")
                    return self._entries
                raise
            self._entries = list(entries)
            self._loaded_at = self._clock()
            return self._entries
