import logging
import re
from typing import NamedTuple, Optional

import requests

from pigskin.exceptions import TransientUpstreamError

logger = logging.getLogger(__name__)

FEED_STATUS_MAP = {
    "completed": "completed",
    "final": "completed",
    "in_progress": "in_progress",
    "inprogress": "in_progress",
    "scheduled": "scheduled",
}


class FeedGame(NamedTuple):
    external_id: Optional[str]
    home_team: str
    away_team: str
    home_score: Optional[int]
    away_score: Optional[int]
    status: str
    period: Optional[int]
    clock: Optional[str]


def normalize_team_name(name):
    """Lowercase, strip punctuation and collapse whitespace for name matching"""
    name = re.sub(r"[^a-z0-9\s]", "", (name or "").lower())
    return re.sub(r"\s+", " ", name).strip()


def _parse_score(value):
    if value is None or value == "":
        return None
    return int(value)


class ScoreFeedClient:
    """
    Thin client for the upstream scoreboard feed.

    One bounded-timeout request per call. Failures surface as
    TransientUpstreamError so the caller can skip this poll and try again on
    the next one; nothing here retries or sleeps.
    """

    def __init__(self, base_url, api_key=None, timeout=10, classification="fbs"):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.classification = classification
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": "Pigskin-Engine/1.0"})
        if api_key:
            self.session.headers.update({"Authorization": f"Bearer {api_key}"})

        self.request_count = 0
        self.failed_requests = 0

    @classmethod
    def from_config(cls, app_config):
        return cls(
            base_url=app_config.get("SCORE_FEED_BASE_URL"),
            api_key=app_config.get("SCORE_FEED_API_KEY"),
            timeout=app_config.get("SCORE_FEED_TIMEOUT", 10),
            classification=app_config.get("SCORE_FEED_CLASSIFICATION", "fbs"),
        )

    def _make_api_request(self, url, params=None):
        """Make a single API request, translating failures to TransientUpstreamError"""
        self.request_count += 1

        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response

        except requests.exceptions.Timeout as e:
            self.failed_requests += 1
            logger.warning(f"Request timeout for {url}")
            raise TransientUpstreamError(f"Score feed timed out: {url}") from e
        except requests.exceptions.ConnectionError as e:
            self.failed_requests += 1
            logger.warning(f"Connection error for {url}")
            raise TransientUpstreamError(f"Score feed unreachable: {url}") from e
        except requests.exceptions.HTTPError as e:
            self.failed_requests += 1
            status_code = e.response.status_code if e.response is not None else None
            if status_code == 429:
                logger.warning(f"Rate limited: {url}")
            elif status_code is not None and status_code >= 500:
                logger.warning(f"Server error {status_code}: {url}")
            else:
                logger.error(f"HTTP error {status_code}: {url}")
            raise TransientUpstreamError(
                f"Score feed returned HTTP {status_code}: {url}"
            ) from e
        except requests.exceptions.RequestException as e:
            self.failed_requests += 1
            logger.warning(f"Request failed for {url}: {e}")
            raise TransientUpstreamError(f"Score feed request failed: {e}") from e

    def fetch_scoreboard(self, season, week):
        """Fetch and normalize the scoreboard for one week"""
        url = f"{self.base_url}/scoreboard"
        params = {"year": season, "week": week, "classification": self.classification}

        response = self._make_api_request(url, params=params)

        try:
            payload = response.json()
        except ValueError as e:
            raise TransientUpstreamError("Score feed returned invalid JSON") from e

        games = []
        for raw in payload or []:
            feed_game = self.parse_game(raw)
            if feed_game is not None:
                games.append(feed_game)

        logger.debug(f"Fetched {len(games)} scoreboard games for {season} week {week}")
        return games

    @staticmethod
    def parse_game(raw):
        """Normalize one scoreboard row; rows without both teams are dropped"""
        home = raw.get("homeTeam") or {}
        away = raw.get("awayTeam") or {}
        if not home.get("name") or not away.get("name"):
            return None

        raw_status = str(raw.get("status") or "").lower()
        status = FEED_STATUS_MAP.get(raw_status, "scheduled")
        if raw.get("completed"):
            status = "completed"

        try:
            home_score = _parse_score(home.get("points"))
            away_score = _parse_score(away.get("points"))
            period = _parse_score(raw.get("period"))
        except (TypeError, ValueError):
            logger.warning(f"Unparseable scoreboard row {raw.get('id')}, skipping")
            return None

        return FeedGame(
            external_id=str(raw["id"]) if raw.get("id") is not None else None,
            home_team=home["name"],
            away_team=away["name"],
            home_score=home_score,
            away_score=away_score,
            status=status,
            period=period,
            clock=raw.get("clock"),
        )

    def get_status(self):
        return {
            "base_url": self.base_url,
            "total_requests": self.request_count,
            "failed_requests": self.failed_requests,
            "timeout": self.timeout,
        }
