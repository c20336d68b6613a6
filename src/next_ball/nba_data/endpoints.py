"""Canonical upstream endpoint constants."""

from __future__ import annotations

SCHEDULE_URL = "https://cdn.nba.com/static/json/staticData/scheduleLeagueV2.json"
LIVE_BOXSCORE_URL_TEMPLATE = (
    "https://cdn.nba.com/static/json/liveData/boxscore/boxscore_{game_id}.json"
)

STATS_BASE_URL = "https://stats.nba.com/stats"
STANDINGS_URL_TEMPLATE = (
    STATS_BASE_URL
    + "/leaguestandingsv3?LeagueID=00&Season={season}&SeasonType=Regular%20Season"
)
TEAM_GAME_LOG_URL_TEMPLATE = (
    STATS_BASE_URL
    + "/teamgamelog?DateFrom=&DateTo=&LeagueID=00&Season={season}"
    + "&SeasonType=Regular%20Season&TeamID={team_id}"
)
TEAM_ROSTER_URL_TEMPLATE = (
    STATS_BASE_URL + "/commonteamroster?LeagueID=00&Season={season}&TeamID={team_id}"
)
GAME_FINDER_URL_TEMPLATE = (
    STATS_BASE_URL
    + "/leaguegamefinder?Season={season}&SeasonType=Regular%20Season&TeamID={team_id}"
    + "&vsTeamID={opponent_id}&PlayerOrTeam=T&OrderBy=GAME_DATE%20DESC"
)
BOXSCORE_V3_URL_TEMPLATE = (
    STATS_BASE_URL
    + "/boxscoretraditionalv3?GameID={game_id}&StartPeriod=0&EndPeriod=14"
    + "&StartRange=0&EndRange=2147483647&RangeType=0"
)

OFFICIAL_INJURY_URLS = [
    "https://official.nba.com/nba-injury-report-2025-26-season/",
    "https://official.nba.com/nba-injury-report/",
]
OFFICIAL_INJURY_PDF_TEMPLATE = (
    "https://ak-static.cms.nba.com/referee/injury/Injury-Report_{date}_{slot}.pdf"
)
CBS_INJURIES_URL = "https://www.cbssports.com/nba/injuries/"

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
STATS_HEADERS = {
    "Referer": "https://www.nba.com/",
    "Origin": "https://www.nba.com",
    "x-nba-stats-origin": "stats",
    "x-nba-stats-token": "true",
}
