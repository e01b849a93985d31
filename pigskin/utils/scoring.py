"""
Settlement Engine for against-the-spread picks

Pure functions: given a game's spread and score and a pick's selection and
lock flag, produce the pick's result and points. Nothing here touches the
database; the pick processor decides where results are written.

Scoring:
    push  -> 10 points, whichever team was picked
    loss  -> 0 points
    win   -> 20 points plus a margin bonus on the covering margin
             (1 for 11+, 3 for 20+, 5 for 29+)
    lock  -> the whole value is doubled
"""

from typing import NamedTuple, Optional

from pigskin.exceptions import SettlementError

WIN, LOSS, PUSH = "win", "loss", "push"

BASE_WIN_POINTS = 20
PUSH_POINTS = 10
LOSS_POINTS = 0

# (minimum covering margin, bonus), highest threshold first
MARGIN_BONUS_BRACKETS = ((29, 5), (20, 3), (11, 1))

LOCK_RULE_DOUBLE = "double"
LOCK_RULE_DOUBLE_BONUS = "double_bonus"
LOCK_RULES = (LOCK_RULE_DOUBLE, LOCK_RULE_DOUBLE_BONUS)


class AtsOutcome(NamedTuple):
    winner: Optional[str]  # covering team name, None on a push
    adjusted_margin: float
    margin_bonus: int

    @property
    def is_push(self):
        return self.winner is None


class SettlementResult(NamedTuple):
    result: str
    points: int
    ats_winner: Optional[str]
    cover_margin: float
    margin_bonus: int


def calculate_margin_bonus(cover_margin):
    """Bonus for the magnitude of the covering margin"""
    margin = abs(cover_margin)
    for threshold, bonus in MARGIN_BONUS_BRACKETS:
        if margin >= threshold:
            return bonus
    return 0


def calculate_ats_outcome(home_team, away_team, home_score, away_score, spread):
    """Determine which team covered the spread (None for a push)"""
    if home_score is None or away_score is None:
        raise SettlementError("Cannot settle a game without both scores")

    adjusted = (home_score - away_score) + (spread or 0.0)

    if adjusted > 0:
        return AtsOutcome(home_team, adjusted, calculate_margin_bonus(adjusted))
    if adjusted < 0:
        return AtsOutcome(away_team, adjusted, calculate_margin_bonus(adjusted))
    return AtsOutcome(None, 0.0, 0)


def calculate_pick_points(result, margin_bonus, is_lock=False, lock_rule=LOCK_RULE_DOUBLE):
    """Points for a pick result, applying the lock rule"""
    if result == PUSH:
        points = PUSH_POINTS
        bonus = 0
    elif result == WIN:
        points = BASE_WIN_POINTS + margin_bonus
        bonus = margin_bonus
    else:
        return LOSS_POINTS

    if not is_lock:
        return points

    if lock_rule == LOCK_RULE_DOUBLE:
        return points * 2
    if lock_rule == LOCK_RULE_DOUBLE_BONUS:
        return points + bonus
    raise SettlementError(f"Unknown lock scoring rule: {lock_rule}")


def settle_pick(
    selected_team,
    home_team,
    away_team,
    home_score,
    away_score,
    spread,
    is_lock=False,
    lock_rule=LOCK_RULE_DOUBLE,
) -> SettlementResult:
    """Settle one pick against a game's score"""
    if selected_team not in (home_team, away_team):
        raise SettlementError(
            f"Selected team {selected_team!r} is not playing in {away_team} @ {home_team}"
        )

    outcome = calculate_ats_outcome(home_team, away_team, home_score, away_score, spread)

    if outcome.is_push:
        result = PUSH
    elif selected_team == outcome.winner:
        result = WIN
    else:
        result = LOSS

    return SettlementResult(
        result=result,
        points=calculate_pick_points(result, outcome.margin_bonus, is_lock, lock_rule),
        ats_winner=outcome.winner,
        cover_margin=abs(outcome.adjusted_margin),
        margin_bonus=outcome.margin_bonus,
    )


def settle_pick_for_game(pick, game, is_lock=None, lock_rule=LOCK_RULE_DOUBLE):
    """Convenience wrapper taking model objects"""
    return settle_pick(
        pick.selected_team,
        game.home_team,
        game.away_team,
        game.home_score,
        game.away_score,
        game.spread,
        is_lock=pick.is_lock if is_lock is None else is_lock,
        lock_rule=lock_rule,
    )
