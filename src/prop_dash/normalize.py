"""Shared NBA team/player name normalization helpers."""

from __future__ import annotations

import re
import unicodedata

TEAM_CODES = {
    "atlanta hawks": "ATL",
    "boston celtics": "BOS",
    "brooklyn nets": "BKN",
    "charlotte hornets": "CHA",
    "chicago bulls": "CHI",
    "cleveland cavaliers": "CLE",
    "dallas mavericks": "DAL",
    "denver nuggets": "DEN",
    "detroit pistons": "DET",
    "golden state warriors": "GSW",
    "houston rockets": "HOU",
    "indiana pacers": "IND",
    "los angeles clippers": "LAC",
    "los angeles lakers": "LAL",
    "memphis grizzlies": "MEM",
    "miami heat": "MIA",
    "milwaukee bucks": "MIL",
    "minnesota timberwolves": "MIN",
    "new orleans pelicans": "NOP",
    "new york knicks": "NYK",
    "oklahoma city thunder": "OKC",
    "orlando magic": "ORL",
    "philadelphia 76ers": "PHI",
    "phoenix suns": "PHX",
    "portland trail blazers": "POR",
    "sacramento kings": "SAC",
    "san antonio spurs": "SAS",
    "toronto raptors": "TOR",
    "utah jazz": "UTA",
    "washington wizards": "WAS",
}

TEAM_NAME_ALIASES = {
    "atlanta": "atlanta hawks",
    "hawks": "atlanta hawks",
    "boston": "boston celtics",
    "celtics": "boston celtics",
    "brooklyn": "brooklyn nets",
    "nets": "brooklyn nets",
    "brk": "brooklyn nets",
    "charlotte": "charlotte hornets",
    "hornets": "charlotte hornets",
    "cho": "charlotte hornets",
    "chicago": "chicago bulls",
    "bulls": "chicago bulls",
    "cleveland": "cleveland cavaliers",
    "cavaliers": "cleveland cavaliers",
    "dallas": "dallas mavericks",
    "mavericks": "dallas mavericks",
    "denver": "denver nuggets",
    "nuggets": "denver nuggets",
    "detroit": "detroit pistons",
    "pistons": "detroit pistons",
    "golden state": "golden state warriors",
    "warriors": "golden state warriors",
    "gs": "golden state warriors",
    "houston": "houston rockets",
    "rockets": "houston rockets",
    "indiana": "indiana pacers",
    "pacers": "indiana pacers",
    "la clippers": "los angeles clippers",
    "clippers": "los angeles clippers",
    "la lakers": "los angeles lakers",
    "lakers": "los angeles lakers",
    "memphis": "memphis grizzlies",
    "grizzlies": "memphis grizzlies",
    "miami": "miami heat",
    "heat": "miami heat",
    "milwaukee": "milwaukee bucks",
    "bucks": "milwaukee bucks",
    "minnesota": "minnesota timberwolves",
    "timberwolves": "minnesota timberwolves",
    "new orleans": "new orleans pelicans",
    "pelicans": "new orleans pelicans",
    "nor": "new orleans pelicans",
    "new york": "new york knicks",
    "knicks": "new york knicks",
    "ny": "new york knicks",
    "oklahoma city": "oklahoma city thunder",
    "thunder": "oklahoma city thunder",
    "orlando": "orlando magic",
    "magic": "orlando magic",
    "philadelphia": "philadelphia 76ers",
    "philadelphia sixers": "philadelphia 76ers",
    "76ers": "philadelphia 76ers",
    "phoenix": "phoenix suns",
    "suns": "phoenix suns",
    "pho": "phoenix suns",
    "portland": "portland trail blazers",
    "trail blazers": "portland trail blazers",
    "sacramento": "sacramento kings",
    "kings": "sacramento kings",
    "san antonio": "san antonio spurs",
    "spurs": "san antonio spurs",
    "sa": "san antonio spurs",
    "toronto": "toronto raptors",
    "raptors": "toronto raptors",
    "utah": "utah jazz",
    "jazz": "utah jazz",
    "washington": "washington wizards",
    "wizards": "washington wizards",
}
TEAM_NAME_ALIASES.update({code.lower(): name for name, code in TEAM_CODES.items()})


def canonical_team_name(name: str) -> str:
    """Canonicalize team names for matching."""
    normalized = " ".join(name.lower().split())
    return TEAM_NAME_ALIASES.get(normalized, normalized)


def team_code(name: str) -> str:
    """Map a team name, nickname or tricode to its tricode; empty when unknown."""
    return TEAM_CODES.get(canonical_team_name(name), "")


def normalize_person_name(name: str) -> str:
    """Normalize person names for fuzzy joins."""
    lowered = name.lower().strip()
    normalized = unicodedata.normalize("NFKD", lowered)
    ascii_only = "".join(ch for ch in normalized if ord(ch) < 128)
    cleaned = re.sub(r"[^a-z0-9]+", "", ascii_only)
    return cleaned
