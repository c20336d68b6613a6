"""Injury reports: official league document first, third-party HTML table as fallback."""

from __future__ import annotations

import asyncio
import html
import re
import tempfile
from collections.abc import Awaitable, Callable
from datetime import date, datetime
from pathlib import Path
from urllib.parse import urljoin

from next_ball.logging import get_logger
from next_ball.nba_data.cache_store import CacheKeys, CacheStore, CacheTTL
from next_ball.nba_data.contracts import InjuryEntry, InjuryStatus
from next_ball.nba_data.endpoints import (
    CBS_INJURIES_URL,
    OFFICIAL_INJURY_PDF_TEMPLATE,
    OFFICIAL_INJURY_URLS,
)
from next_ball.nba_data.errors import NBADataError, ParseFailureError, UpstreamUnavailableError
from next_ball.nba_data.gateway import NBAGateway
from next_ball.nba_data.normalize import (
    TEAM_IDS_BY_NAME,
    TEAM_IDS_BY_TRICODE,
    TEAM_NAME_ALIASES,
    team_id_for_name,
)
from next_ball.singleflight import SingleFlight
from next_ball.time_utils import et_now

logger = get_logger("injuries")

InjuryReport = dict[str, list[InjuryEntry]]
TextExtractor = Callable[[bytes], Awaitable[str]]

MAX_REPORT_CANDIDATES = 3
STATUS_KEYWORDS: dict[str, InjuryStatus] = {
    "out": "Out",
    "doubtful": "Doubtful",
    "questionable": "Questionable",
    "probable": "Probable",
    "available": "Available",
}
OFFICIAL_HEADER_COLUMNS = {
    "game date",
    "game time",
    "matchup",
    "team",
    "player name",
    "current status",
    "reason",
}
_DATE_LINE_RE = re.compile(r"^\d{2}/\d{2}/\d{4}$")
_TIME_LINE_RE = re.compile(r"^\d{1,2}:\d{2}\s+\(ET\)$")
_MATCHUP_LINE_RE = re.compile(r"^[A-Z]{2,4}@[A-Z]{2,4}$")
_ROW_PREFIX_RE = re.compile(
    r"^(?:\d{2}/\d{2}/\d{4}\s+)?(?:\d{1,2}:\d{2}\s*\(ET\)\s+)?(?:[A-Z]{2,4}@[A-Z]{2,4}\s+)?"
)
_STATUS_PATTERN = "|".join(STATUS_KEYWORDS)
_ENTRY_RE = re.compile(rf"^(?P<name>.+?)\s+(?P<status>{_STATUS_PATTERN})\b\s*(?P<reason>.*)$", re.I)
_STATUS_LEAD_RE = re.compile(rf"^(?P<status>{_STATUS_PATTERN})\b\s*(?P<reason>.*)$", re.I)
_REPORT_URL_RE = re.compile(
    r"(?P<date>\d{4}-\d{2}-\d{2})[_-](?P<hour>\d{1,2})(?:[-_:]?(?P<minute>\d{2}))?(?P<ampm>AM|PM)",
    flags=re.IGNORECASE,
)
_TEAM_LABELS = sorted(
    [*TEAM_IDS_BY_NAME, *TEAM_NAME_ALIASES],
    key=len,
    reverse=True,
)


def map_injury_status(text: str) -> InjuryStatus:
    """Map free status text onto the five known statuses; unknown text is Questionable."""
    value = " ".join(text.lower().replace("-", " ").split())
    if value in STATUS_KEYWORDS:
        return STATUS_KEYWORDS[value]
    if "out for the season" in value or "out for season" in value:
        return "Out"
    if "out indefinitely" in value or "inactive" in value:
        return "Out"
    if re.search(r"\bout\b", value):
        return "Out"
    if "doubtful" in value:
        return "Doubtful"
    if "game time decision" in value or "questionable" in value or "day to day" in value:
        return "Questionable"
    if "probable" in value:
        return "Probable"
    if "available" in value or re.search(r"\bactive\b", value):
        return "Available"
    return "Questionable"


def injury_cache_ttl(is_game_day: bool, now_et: datetime) -> int:
    """Injury freshness tightens on game day, and again from 1pm local time."""
    if not is_game_day:
        return CacheTTL.INJURIES_NON_GAME_DAY
    if now_et.hour >= 13:
        return CacheTTL.INJURIES_GAME_DAY_AFTER_1PM
    return CacheTTL.INJURIES_GAME_DAY


def _player_display_name(raw: str) -> str:
    if "," not in raw:
        return raw.strip()
    last, first = [piece.strip() for piece in raw.split(",", 1)]
    if not first or not last:
        return raw.strip()
    return f"{first} {last}".strip()


def _is_header_line(token: str) -> bool:
    lowered = token.strip().lower()
    if not lowered:
        return True
    if lowered in OFFICIAL_HEADER_COLUMNS or lowered.startswith("game date"):
        return True
    if lowered.startswith("injury report:"):
        return True
    if lowered.startswith("page ") and " of " in lowered:
        return True
    if _DATE_LINE_RE.match(token) or _TIME_LINE_RE.match(token):
        return True
    return bool(_MATCHUP_LINE_RE.match(token))


def _looks_like_player_name(text: str) -> bool:
    """A "Last, First" pair, or two to four words made of letters and name punctuation."""
    candidate = text.strip()
    if not candidate or " - " in candidate or any(ch in candidate for ch in "/;:()"):
        return False
    if any(ch.isdigit() for ch in candidate):
        return False
    if "," in candidate:
        last, _, first = candidate.partition(",")
        return bool(last.strip()) and bool(first.strip()) and "," not in first
    return 2 <= len(candidate.split()) <= 4


def _split_team_prefix(line: str) -> tuple[int | None, str]:
    lowered = line.lower()
    for label in _TEAM_LABELS:
        if lowered == label:
            return team_id_for_name(label), ""
        if lowered.startswith(label + " "):
            return team_id_for_name(label), line[len(label) :].strip()
    return None, line


def parse_injury_text(text: str) -> InjuryReport:
    """Group report lines into entries per team id (as string keys).

    Handles one-row-per-line output as well as extractions that put each
    column on its own line; wrapped reasons are appended to the previous entry.
    """
    report: InjuryReport = {}
    current_team: int | None = None
    buffered: list[str] = []
    last_entry: InjuryEntry | None = None

    def _emit(name: str, status_text: str, reason: str) -> InjuryEntry | None:
        if current_team is None or not name.strip():
            return None
        entry: InjuryEntry = {
            "player_name": _player_display_name(name),
            "position": "",
            "status": map_injury_status(status_text),
            "reason": reason.strip(),
        }
        report.setdefault(str(current_team), []).append(entry)
        return entry

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        if _is_header_line(line):
            buffered = []
            last_entry = None
            continue
        line = _ROW_PREFIX_RE.sub("", line).strip()
        if line.lower() == "not yet submitted" or line.lower().endswith(" not yet submitted"):
            team_id, _ = _split_team_prefix(line)
            if team_id is not None:
                current_team = team_id
            buffered = []
            last_entry = None
            continue
        team_id, line = _split_team_prefix(line)
        if team_id is not None:
            current_team = team_id
            buffered = []
            last_entry = None
            if not line:
                continue

        lead = _STATUS_LEAD_RE.match(line)
        if lead is not None:
            if buffered:
                last_entry = _emit(" ".join(buffered), lead.group("status"), lead.group("reason"))
                buffered = []
            continue

        row = _ENTRY_RE.match(line)
        if row is not None and _looks_like_player_name(row.group("name")):
            last_entry = _emit(row.group("name"), row.group("status"), row.group("reason"))
            buffered = []
            continue

        if _looks_like_player_name(line) and "," in line:
            buffered = [line]
            last_entry = None
            continue

        if last_entry is not None:
            last_entry["reason"] = f"{last_entry['reason']} {line}".strip()
        else:
            buffered.append(line)
    return report


def report_sort_key(url: str) -> tuple[int, int, int, int, int, str]:
    match = _REPORT_URL_RE.search(url)
    if match is None:
        return (0, 0, 0, 0, 0, url)
    try:
        year, month, day = [int(value) for value in match.group("date").split("-")]
        hour = int(match.group("hour"))
        minute = int(match.group("minute") or "0")
    except ValueError:
        return (0, 0, 0, 0, 0, url)
    if hour == 12:
        hour = 0
    if match.group("ampm").upper() == "PM":
        hour += 12
    return (year, month, day, hour, minute, url)


def extract_report_links(html_text: str, base_url: str) -> list[str]:
    """Absolute links to injury-report documents found on a landing page."""
    pattern = re.compile(r'<a[^>]+href="(?P<href>[^"]+\.pdf)"[^>]*>(?P<label>.*?)</a>', re.I | re.S)
    strict_links: set[str] = set()
    broad_links: set[str] = set()
    for match in pattern.finditer(html_text):
        href = match.group("href")
        label = html.unescape(re.sub(r"<[^>]+>", "", match.group("label"))).strip().lower()
        absolute = urljoin(base_url, href)
        broad_links.add(absolute)
        haystack = f"{href.lower()} {label}"
        if "injury" in haystack and "report" in haystack:
            strict_links.add(absolute)
    if strict_links:
        return sorted(strict_links)
    return sorted(link for link in broad_links if "injury" in link.lower())


def select_report_links(links: list[str], report_date: date) -> list[str]:
    """Links stamped with `report_date`, latest timestamp first."""
    stamp = report_date.isoformat()
    dated = [
        link
        for link in links
        if (match := _REPORT_URL_RE.search(link)) and match.group("date") == stamp
    ]
    return sorted(dated, key=report_sort_key, reverse=True)[:MAX_REPORT_CANDIDATES]


def best_guess_report_url(now_et: datetime) -> str:
    """Document URL for the most recent 15-minute publication slot."""
    slot_time = now_et.replace(minute=now_et.minute - now_et.minute % 15, second=0, microsecond=0)
    slot = slot_time.strftime("%I_%M%p")
    return OFFICIAL_INJURY_PDF_TEMPLATE.format(date=slot_time.date().isoformat(), slot=slot)


async def extract_pdf_text(pdf_bytes: bytes) -> str:
    """Text of a PDF document via poppler's `pdftotext`."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        pdf_path = Path(tmp_dir) / "injury-report.pdf"
        pdf_path.write_bytes(pdf_bytes)
        try:
            proc = await asyncio.create_subprocess_exec(
                "pdftotext",
                "-enc",
                "UTF-8",
                str(pdf_path),
                "-",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise ParseFailureError("pdftotext is not installed") from exc
        stdout, stderr = await proc.communicate()
    if proc.returncode != 0:
        message = stderr.decode("utf-8", "replace").strip()
        raise ParseFailureError(message or f"pdftotext failed with code {proc.returncode}")
    return stdout.decode("utf-8", "replace").replace("\x0c", "\n")


def html_to_text(html_text: str) -> str:
    text = re.sub(r"(?is)<(script|style)[^>]*>.*?</\1>", " ", html_text)
    text = re.sub(r"(?i)<br\s*/?>|</(tr|p|div|li|h\d)>", "\n", text)
    text = re.sub(r"<[^>]+>", " ", text)
    lines = [" ".join(html.unescape(line).split()) for line in text.splitlines()]
    return "\n".join(line for line in lines if line)


def _strip_tags(fragment: str) -> str:
    return " ".join(html.unescape(re.sub(r"<[^>]+>", " ", fragment)).split())


def _parse_cbs_block(block: str) -> list[InjuryEntry]:
    entries: list[InjuryEntry] = []
    for row_match in re.finditer(r"<tr[^>]*>(.*?)</tr>", block, re.I | re.S):
        cells = re.findall(r"<td[^>]*>(.*?)</td>", row_match.group(1), re.I | re.S)
        if len(cells) < 5:
            continue
        links = re.findall(r"<a[^>]*>([^<]+)</a>", cells[0])
        player_name = " ".join(html.unescape(links[-1] if links else _strip_tags(cells[0])).split())
        if not player_name or player_name == "Player":
            continue
        status_text = _strip_tags(cells[4])
        entries.append(
            {
                "player_name": player_name,
                "position": _strip_tags(cells[1]),
                "status": map_injury_status(status_text),
                "reason": _strip_tags(cells[3]) or status_text,
            }
        )
    return entries


def parse_cbs_injuries(html_text: str) -> InjuryReport:
    """League injury table from the CBS injuries page, keyed by team id string."""
    matches = list(re.finditer(r"/nba/teams/([A-Za-z]{2,3})/[^\"'\s]*", html_text))
    last_index: dict[str, int] = {}
    for position, match in enumerate(matches):
        last_index[match.group(1).upper()] = position
    report: InjuryReport = {}
    for abbr, position in last_index.items():
        team_id = TEAM_IDS_BY_TRICODE.get(abbr)
        if team_id is None:
            continue
        start = matches[position].end()
        end = matches[position + 1].start() if position + 1 < len(matches) else len(html_text)
        entries = _parse_cbs_block(html_text[start : min(end, start + 20000)])
        if entries:
            report[str(team_id)] = entries
    return report


class InjuryReportSource:
    """League-wide injury report, downloaded once per date and shared by both teams."""

    def __init__(
        self,
        gateway: NBAGateway,
        cache: CacheStore,
        *,
        landing_urls: list[str] | None = None,
        text_extractor: TextExtractor = extract_pdf_text,
        flights: SingleFlight | None = None,
    ) -> None:
        self.gateway = gateway
        self.cache = cache
        self.landing_urls = landing_urls if landing_urls is not None else OFFICIAL_INJURY_URLS
        self.text_extractor = text_extractor
        self.flights = flights or SingleFlight()

    async def fetch_team_injuries(
        self, team_id: int, *, is_game_day: bool, now: datetime | None = None
    ) -> list[InjuryEntry]:
        now_et = et_now(now)
        date_str = now_et.date().isoformat()
        key = CacheKeys.injuries(team_id, date_str)
        cached = await self.cache.get(key)
        if cached is not None:
            return cached
        ttl_s = injury_cache_ttl(is_game_day, now_et)
        report = await self.fetch_league_report(now_et=now_et, ttl_s=ttl_s)
        entries = report.get(str(team_id), [])
        await self.cache.set(key, entries, ttl_s)
        return entries

    async def fetch_league_report(self, *, now_et: datetime, ttl_s: int) -> InjuryReport:
        key = CacheKeys.injury_report(now_et.date().isoformat())
        cached = await self.cache.get(key)
        if cached is not None:
            return cached

        async def _load() -> InjuryReport:
            report = await self._download_report(now_et)
            await self.cache.set(key, report, ttl_s)
            return report

        return await self.flights.run(key, _load)

    async def _candidate_urls(self, now_et: datetime) -> list[str]:
        for landing_url in self.landing_urls:
            try:
                page = await self.gateway.get_text(landing_url)
            except NBADataError as exc:
                logger.warning("injury_landing_failed", url=landing_url, error=str(exc))
                continue
            selected = select_report_links(extract_report_links(page, landing_url), now_et.date())
            if selected:
                return selected
        return [best_guess_report_url(now_et)]

    async def _document_text(self, url: str) -> str:
        content = await self.gateway.get_bytes(url)
        if not content:
            raise ParseFailureError(f"empty injury document at {url}")
        if content.lstrip().startswith(b"%PDF"):
            return await self.text_extractor(content)
        return html_to_text(content.decode("utf-8", "replace"))

    async def _download_report(self, now_et: datetime) -> InjuryReport:
        errors: list[str] = []
        for url in await self._candidate_urls(now_et):
            try:
                report = parse_injury_text(await self._document_text(url))
            except NBADataError as exc:
                errors.append(f"{url}:{exc}")
                continue
            if report:
                logger.info("injury_report_parsed", url=url, teams=len(report))
                return report
            errors.append(f"{url}:no rows parsed")
        logger.warning("injury_document_unavailable", errors=errors)

        try:
            report = parse_cbs_injuries(await self.gateway.get_text(CBS_INJURIES_URL))
        except NBADataError as exc:
            raise UpstreamUnavailableError(
                f"injury report unavailable: {exc}", url=CBS_INJURIES_URL
            ) from exc
        if not report:
            raise ParseFailureError("injury fallback table had no rows")
        logger.info("injury_fallback_parsed", teams=len(report))
        return report
