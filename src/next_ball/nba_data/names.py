"""Player identity matching across sources that spell names differently."""

from __future__ import annotations

import unicodedata
from collections.abc import Iterable

from next_ball.nba_data.contracts import InjuryEntry, Player

NAME_SUFFIXES = frozenset({"jr", "jr.", "sr", "sr.", "ii", "iii", "iv", "v"})


def normalize_for_match(name: str) -> str:
    """Diacritic-free, lowercased, whitespace-collapsed form used for every comparison."""
    decomposed = unicodedata.normalize("NFD", name or "")
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return " ".join(stripped.lower().split())


def _strip_suffix(tokens: list[str]) -> list[str]:
    if len(tokens) > 1 and tokens[-1].rstrip(",") in NAME_SUFFIXES:
        return tokens[:-1]
    return tokens


def display_name(player: Player) -> str:
    return f"{player.get('first_name', '')} {player.get('last_name', '')}".strip()


class RosterNameIndex:
    """Lookup tables over one roster: full name, "Last, First" and unambiguous surname."""

    def __init__(self, roster: Iterable[Player]) -> None:
        self._full: dict[str, Player] = {}
        self._inverted: dict[str, Player] = {}
        self._surname: dict[str, Player] = {}
        ambiguous: set[str] = set()
        for player in roster:
            first = normalize_for_match(player.get("first_name", ""))
            last = normalize_for_match(player.get("last_name", ""))
            if not last and not first:
                continue
            last_variants = {last, " ".join(_strip_suffix(last.split()))}
            for variant in last_variants:
                if not variant:
                    continue
                self._full.setdefault(f"{first} {variant}".strip(), player)
                self._inverted.setdefault(f"{variant}, {first}".strip(", "), player)
                if variant in self._surname and self._surname[variant] is not player:
                    ambiguous.add(variant)
                self._surname[variant] = player
        for surname in ambiguous:
            self._surname.pop(surname, None)

    def lookup(self, name: str) -> Player | None:
        key = normalize_for_match(name)
        if not key:
            return None
        found = self._full.get(key)
        if found is not None:
            return found
        if "," in key:
            last, _, first = key.partition(",")
            last = last.strip()
            first = first.strip()
            found = self._inverted.get(f"{last}, {first}") or self._full.get(f"{first} {last}")
            if found is not None:
                return found
            surname_tokens = _strip_suffix(last.split())
        else:
            tokens = _strip_suffix(key.split())
            found = self._full.get(" ".join(tokens))
            if found is not None:
                return found
            surname_tokens = tokens[-1:] if len(tokens) > 1 else tokens
        return self._surname.get(" ".join(surname_tokens))


def resolve_player(name: str, roster: Iterable[Player]) -> Player | None:
    return RosterNameIndex(roster).lookup(name)


def enrich_injuries(entries: list[InjuryEntry], roster: list[Player]) -> list[InjuryEntry]:
    """Swap free-text names for roster names and carry over jersey and position."""
    if not roster:
        return list(entries)
    index = RosterNameIndex(roster)
    enriched: list[InjuryEntry] = []
    for entry in entries:
        updated: InjuryEntry = {**entry}
        player = index.lookup(entry.get("player_name", ""))
        if player is not None:
            updated["player_name"] = display_name(player) or entry.get("player_name", "")
            if player.get("jersey_number"):
                updated["jersey_number"] = player["jersey_number"]
            if not entry.get("position") and player.get("position"):
                updated["position"] = player["position"]
        enriched.append(updated)
    return enriched
