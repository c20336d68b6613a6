"""Shared NBA entity normalization helpers."""

from __future__ import annotations

import math
import re
import string
from typing import Any

from next_ball.nba_data.contracts import GameTeam, TeamInfo

PLACEHOLDER = "—"

TEAM_TRICODES: dict[int, str] = {
    1610612737: "ATL",
    1610612738: "BOS",
    1610612739: "CLE",
    1610612740: "NOP",
    1610612741: "CHI",
    1610612742: "DAL",
    1610612743: "DEN",
    1610612744: "GSW",
    1610612745: "HOU",
    1610612746: "LAC",
    1610612747: "LAL",
    1610612748: "MIA",
    1610612749: "MIL",
    1610612750: "MIN",
    1610612751: "BKN",
    1610612752: "NYK",
    1610612753: "ORL",
    1610612754: "IND",
    1610612755: "PHI",
    1610612756: "PHX",
    1610612757: "POR",
    1610612758: "SAC",
    1610612759: "SAS",
    1610612760: "OKC",
    1610612761: "TOR",
    1610612762: "UTA",
    1610612763: "MEM",
    1610612764: "WAS",
    1610612765: "DET",
    1610612766: "CHA",
}
TEAM_IDS_BY_TRICODE: dict[str, int] = {code: team_id for team_id, code in TEAM_TRICODES.items()}
# Alternate abbreviations seen on third-party pages.
TEAM_IDS_BY_TRICODE.update(
    {
        "NO": 1610612740,
        "GS": 1610612744,
        "NY": 1610612752,
        "PHO": 1610612756,
        "SA": 1610612759,
        "BRK": 1610612751,
        "CHO": 1610612766,
    }
)

WEST_TEAM_IDS = frozenset(
    {
        1610612740,
        1610612742,
        1610612743,
        1610612744,
        1610612745,
        1610612746,
        1610612747,
        1610612750,
        1610612756,
        1610612757,
        1610612758,
        1610612759,
        1610612760,
        1610612762,
        1610612763,
    }
)

TEAM_FULL_NAMES: dict[int, str] = {
    1610612737: "atlanta hawks",
    1610612738: "boston celtics",
    1610612739: "cleveland cavaliers",
    1610612740: "new orleans pelicans",
    1610612741: "chicago bulls",
    1610612742: "dallas mavericks",
    1610612743: "denver nuggets",
    1610612744: "golden state warriors",
    1610612745: "houston rockets",
    1610612746: "los angeles clippers",
    1610612747: "los angeles lakers",
    1610612748: "miami heat",
    1610612749: "milwaukee bucks",
    1610612750: "minnesota timberwolves",
    1610612751: "brooklyn nets",
    1610612752: "new york knicks",
    1610612753: "orlando magic",
    1610612754: "indiana pacers",
    1610612755: "philadelphia 76ers",
    1610612756: "phoenix suns",
    1610612757: "portland trail blazers",
    1610612758: "sacramento kings",
    1610612759: "san antonio spurs",
    1610612760: "oklahoma city thunder",
    1610612761: "toronto raptors",
    1610612762: "utah jazz",
    1610612763: "memphis grizzlies",
    1610612764: "washington wizards",
    1610612765: "detroit pistons",
    1610612766: "charlotte hornets",
}
TEAM_IDS_BY_NAME: dict[str, int] = {name: team_id for team_id, name in TEAM_FULL_NAMES.items()}

TEAM_NAME_ALIASES = {
    "la clippers": "los angeles clippers",
    "la lakers": "los angeles lakers",
    "philadelphia sixers": "philadelphia 76ers",
    "portland trailblazers": "portland trail blazers",
}

_DIGITS_RE = re.compile(r"^\d+$")
_INT_TEXT_RE = re.compile(r"[+-]?\d+")


def safe_float(value: Any) -> float | None:
    """Parse number-like input into float, returning None when invalid."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        try:
            parsed = float(raw)
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def safe_int(value: Any) -> int | None:
    """Parse number-like input into int, returning None when invalid."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        if raw.startswith("+"):
            raw = raw[1:]
        try:
            return int(raw)
        except ValueError:
            return None
    return None


def to_score(value: Any) -> int | None:
    """Coerce a score that may arrive as number or numeric string."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) and value.is_integer() else None
    if isinstance(value, str):
        match = _INT_TEXT_RE.fullmatch(value.strip())
        return int(match.group(0)) if match else None
    return None


def canonical_team_name(raw: str) -> str:
    """Lowercase team label with common aliases collapsed."""
    key = " ".join(raw.strip().lower().split())
    return TEAM_NAME_ALIASES.get(key, key)


def team_id_for_name(raw: str) -> int | None:
    return TEAM_IDS_BY_NAME.get(canonical_team_name(raw))


def _first(raw: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def _clean_text(value: Any) -> str:
    return str(value).strip() if value is not None else ""


def _is_tricode(value: str) -> bool:
    return bool(value) and not _DIGITS_RE.match(value)


def _derive_tricode(team_id: int, raw_tricode: str, slug: str, city: str, name: str) -> str:
    candidate = raw_tricode.upper()[:3]
    if _is_tricode(candidate):
        return candidate
    known = TEAM_TRICODES.get(team_id)
    if known:
        return known
    candidate = slug.upper()[:3]
    if _is_tricode(candidate):
        return candidate
    for label in (city, name):
        letters = "".join(ch for ch in label if ch.isalpha())
        if letters:
            return letters[:3].upper()
    return PLACEHOLDER


def normalize_team(raw: dict[str, Any] | None) -> TeamInfo:
    """Build a TeamInfo from camelCase or snake_case upstream team objects."""
    raw = raw or {}
    team_id = safe_int(_first(raw, "team_id", "teamId", "TEAM_ID", "TeamID")) or 0
    name = _clean_text(_first(raw, "team_name", "teamName", "TeamName"))
    city = _clean_text(_first(raw, "team_city", "teamCity", "TeamCity"))
    raw_tricode = _clean_text(
        _first(raw, "tricode", "teamTricode", "team_tricode", "TEAM_ABBREVIATION")
    )
    slug = _clean_text(_first(raw, "slug", "teamSlug", "TeamSlug")).lower()
    tricode = _derive_tricode(team_id, raw_tricode, slug, city, name)
    return {
        "team_id": team_id,
        "team_name": name or PLACEHOLDER,
        "team_city": city or PLACEHOLDER,
        "tricode": tricode,
        "slug": slug or (tricode.lower() if tricode != PLACEHOLDER else ""),
    }


def normalize_game_team(raw: dict[str, Any] | None) -> GameTeam:
    raw = raw or {}
    team: GameTeam = {**normalize_team(raw)}
    team["score"] = to_score(raw.get("score"))
    team["wins"] = safe_int(raw.get("wins"))
    team["losses"] = safe_int(raw.get("losses"))
    return team


def team_info(team: dict[str, Any]) -> TeamInfo:
    """Strip score/record fields from a GameTeam."""
    return {
        "team_id": int(team.get("team_id", 0)),
        "team_name": str(team.get("team_name", PLACEHOLDER)),
        "team_city": str(team.get("team_city", PLACEHOLDER)),
        "tricode": str(team.get("tricode", PLACEHOLDER)),
        "slug": str(team.get("slug", "")),
    }


def team_info_for_id(team_id: int) -> TeamInfo:
    """Static TeamInfo for a known franchise id."""
    full = TEAM_FULL_NAMES.get(team_id, "")
    tricode = TEAM_TRICODES.get(team_id, PLACEHOLDER)
    city, _, nickname = full.rpartition(" ")
    if full.endswith("trail blazers"):
        city, nickname = "portland", "trail blazers"
    return {
        "team_id": team_id,
        "team_name": string.capwords(nickname) or PLACEHOLDER,
        "team_city": string.capwords(city) or PLACEHOLDER,
        "tricode": tricode,
        "slug": nickname.replace(" ", "") if nickname else tricode.lower(),
    }
