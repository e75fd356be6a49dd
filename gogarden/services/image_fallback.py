"""
Multi-source image fallback.

A plant or article carries an ordered list of candidate image URLs (own
storage first, stock photos after). ImageFallbackController walks that list
one candidate at a time and only gives up (showing a name + season glyph
placeholder) once every candidate has failed.

    TRYING(0) ─fail→ TRYING(1) ─fail→ … ─fail→ FALLBACK
        └──────ok──────┴──────ok──────→ LOADED

Load attempts report back with LoadOk / LoadErr values instead of callbacks.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, Sequence, Union

logger = logging.getLogger(__name__)

COOL_SEASON_GLYPH = "❄️"
WARM_SEASON_GLYPH = "☀️"


class FallbackState(str, Enum):
    TRYING = "trying"
    LOADED = "loaded"
    FALLBACK = "fallback"


class LoadFailure(str, Enum):
    FETCH_FAILED = "fetch_failed"    # non-2xx, timeout, network error
    DECODE_FAILED = "decode_failed"  # bytes arrived but are not an image


@dataclass(frozen=True)
class LoadOk:
    uri: str


@dataclass(frozen=True)
class LoadErr:
    reason: LoadFailure
    detail: str = ""


LoadResult = Union[LoadOk, LoadErr]
Loader = Callable[[str], Awaitable[LoadResult]]


@dataclass(frozen=True)
class Placeholder:
    text: str
    glyph: str


def season_glyph(season: Optional[str]) -> str:
    return COOL_SEASON_GLYPH if season == "cool" else WARM_SEASON_GLYPH


class ImageFallbackController:
    """
    Per-display fallback state for one entity.

    Reuse an instance for a different entity through show(); the index and
    fallback flag are reset whenever the entity identity (name + candidates)
    changes.
    """

    def __init__(
        self,
        name: str,
        candidates: Optional[Sequence[Optional[str]]] = None,
        season: Optional[str] = None,
    ) -> None:
        self._identity: Optional[tuple] = None
        self.name = name
        self.season = season
        self.candidates: tuple[str, ...] = ()
        self.current_index = 0
        self.state = FallbackState.FALLBACK
        self.attempted: list[int] = []
        self.loaded_uri: Optional[str] = None
        self.last_error: Optional[LoadErr] = None
        self.show(name, candidates, season)

    # ── Entity binding ────────────────────────────────────────────────────────

    def show(
        self,
        name: str,
        candidates: Optional[Sequence[Optional[str]]] = None,
        season: Optional[str] = None,
    ) -> bool:
        """Bind the controller to an entity. Returns True if state was reset."""
        cleaned = tuple(c for c in (candidates or ()) if isinstance(c, str) and c)
        identity = (name, cleaned)
        if identity == self._identity:
            return False

        self._identity = identity
        self.name = name
        self.season = season
        self.candidates = cleaned
        self.current_index = 0
        self.attempted = []
        self.loaded_uri = None
        self.last_error = None
        self.state = FallbackState.TRYING if cleaned else FallbackState.FALLBACK
        return True

    # ── State machine ─────────────────────────────────────────────────────────

    @property
    def current_url(self) -> Optional[str]:
        if self.state is not FallbackState.TRYING:
            return None
        return self.candidates[self.current_index]

    @property
    def placeholder(self) -> Placeholder:
        return Placeholder(text=self.name, glyph=season_glyph(self.season))

    def record(self, result: LoadResult) -> FallbackState:
        """Apply the outcome of loading current_url. Ignored once terminal."""
        if self.state is not FallbackState.TRYING:
            return self.state

        self.attempted.append(self.current_index)

        if isinstance(result, LoadOk):
            self.loaded_uri = result.uri
            self.state = FallbackState.LOADED
            logger.debug("image loaded for %s from candidate %d", self.name, self.current_index)
            return self.state

        self.last_error = result
        next_index = self.current_index + 1
        if next_index < len(self.candidates):
            logger.debug(
                "image failed for %s (%s), trying next image (%d/%d)",
                self.name, result.reason.value, next_index + 1, len(self.candidates),
            )
            self.current_index = next_index
        else:
            logger.info("all %d images failed for %s, showing fallback", len(self.candidates), self.name)
            self.state = FallbackState.FALLBACK
        return self.state

    async def resolve(self, loader: Loader) -> FallbackState:
        """
        Drive the machine with loader until LOADED or FALLBACK.

        A result that arrives after show() switched to another entity is
        dropped; the loop carries on with the new entity's candidates.
        """
        while self.state is FallbackState.TRYING:
            identity = self._identity
            result = await loader(self.candidates[self.current_index])
            if self._identity != identity:
                continue
            self.record(result)
        return self.state
