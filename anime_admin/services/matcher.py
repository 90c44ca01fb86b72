"""Matching parsed releases to monitored anime."""

import logging
from pathlib import Path
from typing import Iterable, Optional

from ..models import Anime
from .folders import clean_folder_name, is_generic_media_folder
from .parser import Release
from .titles import detect_season_from_title, normalize_for_matching

logger = logging.getLogger(__name__)

# Candidate scoring
EXACT_TITLE_BONUS = 500
SEASON_MATCH_BONUS = 200
SEASON_MISMATCH_PENALTY = 200
NO_SEASON_FIRST_SEASON_BONUS = 100
NO_SEASON_LATER_SEASON_PENALTY = 50


class LibraryMatcher:
    """Finds the monitored anime a release belongs to."""

    def __init__(self, catalog: Iterable[Anime]):
        self.catalog = list(catalog)
        # Normalized title -> anime sharing that title, in catalog order
        self.title_map: dict[str, list[Anime]] = {}
        self._entries: list[tuple[str, Anime]] = []
        for anime in self.catalog:
            for title in anime.titles():
                key = normalize_for_matching(title)
                if not key:
                    continue
                self._entries.append((key, anime))
                matches = self.title_map.setdefault(key, [])
                if anime not in matches:
                    matches.append(anime)

    @staticmethod
    def detect_anime_season(anime: Anime) -> Optional[int]:
        """Season implied by the anime's own titles ('Title 2nd Season')."""
        for title in anime.titles():
            season = detect_season_from_title(title)
            if season is not None:
                return season
        return None

    def score_candidate(self, key: str, anime: Anime, release_key: str, release_season: int) -> int:
        score = 100 - min(100, abs(len(key) - len(release_key)))
        if key == release_key:
            score += EXACT_TITLE_BONUS

        anime_season = self.detect_anime_season(anime)
        if anime_season is not None:
            if anime_season == release_season:
                score += SEASON_MATCH_BONUS
            else:
                score -= SEASON_MISMATCH_PENALTY
        elif release_season == 1:
            score += NO_SEASON_FIRST_SEASON_BONUS
        else:
            score -= NO_SEASON_LATER_SEASON_PENALTY
        return score

    def find_by_title(self, title: str, allow_ambiguous: bool = False) -> Optional[Anime]:
        """Exact lookup on the normalized romaji or English title.

        Titles shared by several anime (e.g. "Title" and "Title 2nd Season")
        only resolve when allow_ambiguous is set, to the first catalog entry.
        """
        key = normalize_for_matching(title)
        matches = self.title_map.get(key, []) if key else []
        if len(matches) == 1 or (matches and allow_ambiguous):
            return matches[0]
        return None

    def best_candidate(self, release: Release) -> Optional[Anime]:
        """Highest scoring anime whose title contains, or is contained in, the release title."""
        release_key = normalize_for_matching(release.title)
        if not release_key:
            return None
        release_season = release.effective_season()

        best: Optional[Anime] = None
        best_score = None
        for key, anime in self._entries:
            if key not in release_key and release_key not in key:
                continue
            score = self.score_candidate(key, anime, release_key, release_season)
            if best_score is None or score > best_score:
                best, best_score = anime, score

        if best is not None:
            logger.debug(f"Candidate match '{release.title}' -> {best.title_romaji} ({best_score})")
        return best

    def match_folder(
        self, file_path: Path, import_root: Optional[Path] = None
    ) -> tuple[Optional[Anime], Optional[str]]:
        """Walk up from the file's folder looking for a folder named after an anime."""
        best_guess = None
        root = Path(import_root) if import_root is not None else None

        for directory in Path(file_path).parents:
            if root is not None and directory == root:
                break
            name = directory.name
            if not name or is_generic_media_folder(name):
                continue

            clean = clean_folder_name(name)
            anime = self.find_by_title(clean, allow_ambiguous=True)
            if anime is not None:
                return anime, clean
            if best_guess is None and clean:
                best_guess = clean

        return None, best_guess

    def match_release(
        self,
        release: Release,
        file_path: Optional[Path] = None,
        import_root: Optional[Path] = None,
    ) -> tuple[Optional[Anime], Optional[str]]:
        """Match a release to an anime.

        Returns (anime, None) for a title match, (anime, folder_name) for a
        folder match and (None, best_guess) when nothing matched.
        """
        anime = self.find_by_title(release.title)
        if anime is not None:
            return anime, None

        anime = self.best_candidate(release)
        if anime is not None:
            return anime, None

        if file_path is None:
            return None, None
        return self.match_folder(Path(file_path), import_root)
