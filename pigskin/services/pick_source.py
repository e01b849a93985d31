"""
Pick Source Resolver

A participant can end up with overlapping submissions for a week: picks made
while logged in, picks sent anonymously and later assigned to their account,
and admin-curated combinations of both. This module decides which of them
count. The decision is computed on demand from the preference and
combination records; the ``is_active_pick_set`` columns only mirror it.

Precedence, highest first:
    1. a custom combination (exactly six picks, exactly one lock)
    2. an explicit source preference
    3. authenticated picks when any exist, otherwise assigned anonymous picks
"""

import logging
from datetime import datetime
from typing import Dict, List, NamedTuple, Optional, Set, Tuple

from pigskin import db
from pigskin.exceptions import ConflictError, ValidationError
from pigskin.models import (
    AdminAction,
    AnonymousPick,
    CustomPickCombination,
    CustomPickCombinationMember,
    Game,
    LeaderboardRefresh,
    Pick,
    PickSourcePreference,
)
from pigskin.models.pick_source import PICK_SOURCES
from pigskin.services.game_lifecycle import mark_for_settlement
from pigskin.utils.timezone_utils import ensure_utc, get_utc_time, to_naive_utc

logger = logging.getLogger(__name__)

SOURCE_COMBINATION = "combination"
COMBINATION_SIZE = 6

PickKey = Tuple[str, int]


def _submission_order(pick):
    submitted = ensure_utc(pick.submitted_at) if pick.submitted_at else None
    return (submitted or ensure_utc(datetime.min), pick.id or 0)


class ActivePickSet(NamedTuple):
    """The resolver's verdict for one user and week"""

    source: Optional[str]
    picks: List[Pick]
    anonymous_picks: List[AnonymousPick]
    lock_overrides: Dict[PickKey, bool]
    hidden_keys: Set[PickKey]
    conflict: Optional[str] = None

    @property
    def members(self):
        return list(self.picks) + list(self.anonymous_picks)

    @property
    def active_keys(self):
        return {pick.key for pick in self.members}

    def is_active(self, pick):
        return pick.key in self.active_keys

    def effective_lock(self, pick):
        return self.lock_overrides.get(pick.key, bool(pick.is_lock))

    def counts_on_leaderboard(self, pick):
        """Active, not hidden by a combination and not hidden by an admin"""
        return (
            self.is_active(pick)
            and pick.key not in self.hidden_keys
            and bool(pick.show_on_leaderboard)
        )


class PickSourceResolver:
    def _load_picks(self, user_id, season, week, submitted_only=False):
        pick_query = Pick.query.filter_by(user_id=user_id, season=season, week=week)
        anonymous_query = AnonymousPick.query.filter_by(
            assigned_user_id=user_id, season=season, week=week
        )
        if submitted_only:
            pick_query = pick_query.filter_by(submitted=True)
            anonymous_query = anonymous_query.filter_by(submitted=True)
        picks = pick_query.order_by(Pick.id).all()
        anonymous_picks = anonymous_query.order_by(AnonymousPick.id).all()
        return picks, anonymous_picks

    def resolve(self, user_id, season, week) -> ActivePickSet:
        """Determine which of a user's picks count for a week"""
        picks, anonymous_picks = self._load_picks(user_id, season, week, submitted_only=True)

        combination = CustomPickCombination.get_for(user_id, season, week)
        if combination is not None:
            return self._resolve_combination(combination, picks, anonymous_picks)

        conflicts = []
        preference = PickSourcePreference.get_for(user_id, season, week)
        if preference is not None:
            source = preference.preferred_source
        elif picks:
            source = "authenticated"
            if anonymous_picks:
                conflicts.append(
                    str(
                        ConflictError(
                            f"User {user_id} has authenticated and anonymous picks for "
                            f"{season} week {week} with no preference; using authenticated"
                        )
                    )
                )
        elif anonymous_picks:
            source = "anonymous"
        else:
            source = None

        active_picks = picks if source == "authenticated" else []
        active_anonymous = (
            self._latest_per_game(anonymous_picks) if source == "anonymous" else []
        )

        lock_overrides = {}
        locks = sorted(
            (p for p in active_picks + active_anonymous if p.is_lock), key=_submission_order
        )
        if len(locks) > 1:
            for demoted in locks[1:]:
                lock_overrides[demoted.key] = False
            conflicts.append(
                str(
                    ConflictError(
                        f"User {user_id} has {len(locks)} locks for {season} week {week}; "
                        f"keeping {locks[0].source} pick {locks[0].id}"
                    )
                )
            )

        for message in conflicts:
            logger.warning(message)

        return ActivePickSet(
            source=source,
            picks=active_picks,
            anonymous_picks=active_anonymous,
            lock_overrides=lock_overrides,
            hidden_keys=set(),
            conflict="; ".join(conflicts) or None,
        )

    def _resolve_combination(self, combination, picks, anonymous_picks):
        by_key = {p.key: p for p in picks + anonymous_picks}
        active_picks, active_anonymous = [], []
        lock_overrides, hidden_keys = {}, set()
        missing = []

        for member in combination.members:
            pick = by_key.get(member.key)
            if pick is None:
                missing.append(member.key)
                continue
            if pick.source == "authenticated":
                active_picks.append(pick)
            else:
                active_anonymous.append(pick)
            lock_overrides[member.key] = bool(member.is_lock)
            if not member.show_in_combination:
                hidden_keys.add(member.key)

        conflict = None
        if missing:
            conflict = str(
                ConflictError(
                    f"Combination {combination.id} references picks no longer owned by "
                    f"user {combination.user_id}: {missing}"
                )
            )
            logger.warning(conflict)

        return ActivePickSet(
            source=SOURCE_COMBINATION,
            picks=active_picks,
            anonymous_picks=active_anonymous,
            lock_overrides=lock_overrides,
            hidden_keys=hidden_keys,
            conflict=conflict,
        )

    @staticmethod
    def _latest_per_game(anonymous_picks):
        latest = {}
        for pick in anonymous_picks:
            current = latest.get(pick.game_id)
            if current is None or _submission_order(pick) > _submission_order(current):
                latest[pick.game_id] = pick
        return sorted(latest.values(), key=lambda p: p.id)

    def sync_active_flags(self, user_id, season, week, active_set=None):
        """Write the resolver's verdict to the is_active_pick_set mirror columns"""
        active_set = active_set or self.resolve(user_id, season, week)
        active_keys = active_set.active_keys
        picks, anonymous_picks = self._load_picks(user_id, season, week)

        changed = 0
        for pick in picks + anonymous_picks:
            is_active = pick.key in active_keys
            if pick.is_active_pick_set != is_active:
                pick.is_active_pick_set = is_active
                changed += 1
        return changed

    # Admin writes. Each one re-queues the week's games, requests a
    # leaderboard refresh, records an AdminAction and commits.

    def _after_admin_write(self, user_id, season, week, now=None):
        now = now or get_utc_time()
        db.session.flush()
        self.sync_active_flags(user_id, season, week)
        mark_for_settlement(Game.get_games_for_week(season, week), now)
        LeaderboardRefresh.request(season, week, to_naive_utc(now))

    def set_preference(
        self, user_id, season, week, source, admin_user_id=None, reasoning=None, now=None
    ):
        if source not in PICK_SOURCES:
            raise ValidationError(
                f"Invalid pick source {source!r}",
                details=[f"source must be one of {', '.join(PICK_SOURCES)}"],
            )

        try:
            preference = PickSourcePreference.get_for(user_id, season, week)
            if preference is None:
                preference = PickSourcePreference(user_id=user_id, season=season, week=week)
                db.session.add(preference)
            previous = preference.preferred_source
            preference.preferred_source = source
            preference.reasoning = reasoning
            preference.set_by = admin_user_id

            AdminAction.log_action(
                admin_user_id,
                "set_pick_source",
                f"Set pick source to {source} for {season} week {week}",
                target_user_id=user_id,
                season=season,
                week=week,
                action_metadata={"previous": previous, "source": source, "reasoning": reasoning},
            )
            self._after_admin_write(user_id, season, week, now)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        logger.info(f"Pick source for user {user_id} {season} week {week} set to {source}")
        return preference

    def clear_preference(self, user_id, season, week, admin_user_id=None, now=None):
        preference = PickSourcePreference.get_for(user_id, season, week)
        if preference is None:
            return False

        try:
            AdminAction.log_action(
                admin_user_id,
                "clear_pick_source",
                f"Cleared pick source preference for {season} week {week}",
                target_user_id=user_id,
                season=season,
                week=week,
                action_metadata={"previous": preference.preferred_source},
            )
            db.session.delete(preference)
            self._after_admin_write(user_id, season, week, now)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        return True

    def validate_combination(self, user_id, season, week, members):
        """Check a proposed combination; returns the resolved picks in member order"""
        if members is None:
            members = []
        if not isinstance(members, (list, tuple)):
            raise ValidationError(
                "Invalid custom pick combination",
                details=[f"members must be a list, got {type(members).__name__}"],
            )
        malformed = [
            f"Member {index}: expected an object, got {type(member).__name__}"
            for index, member in enumerate(members, start=1)
            if not isinstance(member, dict)
        ]
        if malformed:
            raise ValidationError("Invalid custom pick combination", details=malformed)

        errors = []
        members = list(members)

        if len(members) != COMBINATION_SIZE:
            errors.append(
                f"A combination needs exactly {COMBINATION_SIZE} picks, got {len(members)}"
            )

        lock_count = sum(1 for m in members if m.get("is_lock"))
        if lock_count != 1:
            errors.append(f"A combination needs exactly one lock, got {lock_count}")

        resolved = []
        seen_keys, seen_games = set(), set()
        for index, member in enumerate(members, start=1):
            source = member.get("source")
            pick_id = member.get("pick_id")

            if source not in PICK_SOURCES:
                errors.append(f"Member {index}: invalid source {source!r}")
                continue
            if not isinstance(pick_id, int) or isinstance(pick_id, bool):
                errors.append(f"Member {index}: pick_id must be an integer, got {pick_id!r}")
                continue

            key = (source, pick_id)
            if key in seen_keys:
                errors.append(f"Member {index}: {source} pick {pick_id} listed twice")
                continue
            seen_keys.add(key)

            if source == "authenticated":
                pick = db.session.get(Pick, pick_id)
                owner_ok = pick is not None and pick.user_id == user_id
            else:
                pick = db.session.get(AnonymousPick, pick_id)
                owner_ok = pick is not None and pick.assigned_user_id == user_id

            if pick is None:
                errors.append(f"Member {index}: {source} pick {pick_id} does not exist")
                continue
            if not owner_ok or pick.season != season or pick.week != week:
                errors.append(
                    f"Member {index}: {source} pick {pick_id} does not belong to "
                    f"user {user_id} for {season} week {week}"
                )
                continue
            if not pick.submitted:
                errors.append(f"Member {index}: {source} pick {pick_id} was never submitted")
                continue
            if pick.game_id in seen_games:
                errors.append(f"Member {index}: a pick for game {pick.game_id} is already included")
                continue
            seen_games.add(pick.game_id)

            resolved.append((member, pick))

        if errors:
            raise ValidationError("Invalid custom pick combination", details=errors)

        return resolved

    def save_custom_combination(
        self, user_id, season, week, members, admin_user_id=None, reasoning=None, now=None
    ):
        """Create or replace a user's combination for a week.

        ``members`` is a list of dicts with ``source``, ``pick_id``, ``is_lock``
        and optionally ``show_in_combination``.
        """
        resolved = self.validate_combination(user_id, season, week, members)

        try:
            existing = CustomPickCombination.get_for(user_id, season, week)
            replaced = existing is not None
            if replaced:
                db.session.delete(existing)
                db.session.flush()

            combination = CustomPickCombination(
                user_id=user_id,
                season=season,
                week=week,
                reasoning=reasoning,
                created_by=admin_user_id,
            )
            for member, pick in resolved:
                combination.members.append(
                    CustomPickCombinationMember(
                        source=pick.source,
                        pick_id=pick.id if pick.source == "authenticated" else None,
                        anonymous_pick_id=pick.id if pick.source == "anonymous" else None,
                        is_lock=bool(member.get("is_lock")),
                        show_in_combination=bool(member.get("show_in_combination", True)),
                    )
                )
            db.session.add(combination)

            AdminAction.log_action(
                admin_user_id,
                "save_combination",
                f"{'Replaced' if replaced else 'Saved'} custom combination for "
                f"{season} week {week}",
                target_user_id=user_id,
                season=season,
                week=week,
                action_metadata={
                    "members": [
                        {"source": p.source, "pick_id": p.id, "is_lock": bool(m.get("is_lock"))}
                        for m, p in resolved
                    ],
                    "reasoning": reasoning,
                },
            )
            self._after_admin_write(user_id, season, week, now)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        logger.info(f"Custom combination saved for user {user_id} {season} week {week}")
        return combination

    def clear_custom_combination(self, user_id, season, week, admin_user_id=None, now=None):
        combination = CustomPickCombination.get_for(user_id, season, week)
        if combination is None:
            return False

        try:
            AdminAction.log_action(
                admin_user_id,
                "clear_combination",
                f"Cleared custom combination for {season} week {week}",
                target_user_id=user_id,
                season=season,
                week=week,
                action_metadata={"combination": combination.to_dict()},
            )
            db.session.delete(combination)
            self._after_admin_write(user_id, season, week, now)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        return True

    def set_leaderboard_visibility(
        self, user_id, season, week, visible, source=None, admin_user_id=None, now=None
    ):
        """Toggle show_on_leaderboard for a user's picks in a week"""
        if source is not None and source not in PICK_SOURCES:
            raise ValidationError(
                f"Invalid pick source {source!r}",
                details=[f"source must be one of {', '.join(PICK_SOURCES)}"],
            )

        picks, anonymous_picks = self._load_picks(user_id, season, week)
        targets = []
        if source in (None, "authenticated"):
            targets.extend(picks)
        if source in (None, "anonymous"):
            targets.extend(anonymous_picks)

        try:
            changed = 0
            for pick in targets:
                if pick.show_on_leaderboard != visible:
                    pick.show_on_leaderboard = visible
                    changed += 1

            AdminAction.log_action(
                admin_user_id,
                "set_leaderboard_visibility",
                f"{'Showed' if visible else 'Hid'} {source or 'all'} picks for "
                f"{season} week {week}",
                target_user_id=user_id,
                season=season,
                week=week,
                action_metadata={"visible": visible, "source": source, "changed": changed},
            )
            self._after_admin_write(user_id, season, week, now)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        return changed


pick_source_resolver = PickSourceResolver()
