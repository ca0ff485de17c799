"""
Scoring and standings for pick'em leagues.

Everything here is a pure function over immutable snapshots: callers load
games, picks and members once, pass them in, and get ranked standings back.
Nothing is cached or persisted, so a call after any pick or result change
always reflects that change.

Scoring: one point per correct pick on a completed game. A tied game has no
winner, so neither side is correct. Members are ranked by total score with
ties broken by join order; ranks are always 1..N without gaps.
"""

from dataclasses import dataclass, field
from statistics import pstdev

from pickem.models.game import STATUS_COMPLETED
from pickem.models.league_member import MEMBER_ACTIVE

TREND_UP = "up"
TREND_DOWN = "down"
TREND_SAME = "same"


@dataclass(frozen=True)
class GameSnapshot:
    game_id: int
    week_number: int
    home_team_id: int
    away_team_id: int
    status: str
    home_score: int = None
    away_score: int = None

    @property
    def is_scored(self):
        """Completed with a final score on record"""
        return (
            self.status == STATUS_COMPLETED
            and self.home_score is not None
            and self.away_score is not None
        )

    @property
    def winning_team_id(self):
        if not self.is_scored or self.home_score == self.away_score:
            return None
        if self.home_score > self.away_score:
            return self.home_team_id
        return self.away_team_id


@dataclass(frozen=True)
class PickSnapshot:
    user_id: int
    game_id: int
    selected_team_id: int


@dataclass(frozen=True)
class MemberSnapshot:
    user_id: int
    username: str
    status: str
    join_order: int


@dataclass(frozen=True)
class WeeklyScore:
    week: int
    score: int
    correct_picks: int
    total_picks: int
    rank: int

    def to_dict(self):
        return {
            "week": self.week,
            "score": self.score,
            "correct_picks": self.correct_picks,
            "total_picks": self.total_picks,
            "rank": self.rank,
        }


@dataclass(frozen=True)
class StandingStats:
    average_score: float = 0.0
    best_week: int = 0
    worst_week: int = 0
    consistency: float = 0.0
    current_streak: int = 0
    longest_streak: int = 0

    def to_dict(self):
        return {
            "average_score": self.average_score,
            "best_week": self.best_week,
            "worst_week": self.worst_week,
            "consistency": self.consistency,
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
        }


@dataclass(frozen=True)
class LeagueStanding:
    user_id: int
    username: str
    total_score: int
    rank: int
    trend: str
    weekly_scores: tuple = field(default_factory=tuple)
    stats: StandingStats = field(default_factory=StandingStats)

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "username": self.username,
            "total_score": self.total_score,
            "rank": self.rank,
            "trend": self.trend,
            "weekly_scores": [weekly.to_dict() for weekly in self.weekly_scores],
            "stats": self.stats.to_dict(),
        }


def calculate_pick_score(pick, game):
    """
    Score a single pick.

    Returns:
        1 for a correct pick on a completed game, 0 otherwise (including ties
        and games that are not final)
    """
    if game is None or not game.is_scored:
        return 0
    winner = game.winning_team_id
    if winner is None:
        return 0
    return 1 if pick.selected_team_id == winner else 0


def consistency_score(weekly_scores):
    """
    1 / (1 + population standard deviation), in (0, 1].

    Less spread between weeks never yields a lower value. No weeks scores 0.
    """
    if not weekly_scores:
        return 0.0
    return round(1.0 / (1.0 + pstdev(weekly_scores)), 4)


def pick_streaks(correct_by_week):
    """
    (current, longest) runs of consecutive weeks with at least one correct
    pick. ``correct_by_week`` is ordered oldest to newest.
    """
    current = longest = 0
    for correct in correct_by_week:
        if correct > 0:
            current += 1
            longest = max(longest, current)
        else:
            current = 0
    return current, longest


def _rank(members, score_of):
    """Map user_id -> 1-based rank ordered by score desc, then join order"""
    ordered = sorted(members, key=lambda m: (-score_of(m.user_id), m.join_order))
    return {member.user_id: position for position, member in enumerate(ordered, start=1)}


def _trend(rank, previous_rank):
    if previous_rank is None or previous_rank == rank:
        return TREND_SAME
    return TREND_UP if rank < previous_rank else TREND_DOWN


def compute_standings(members, games, picks, week=None):
    """
    Rank active league members from their picks and the game results.

    Args:
        members: MemberSnapshot for every league membership; inactive ones are
            dropped from the output entirely
        games: GameSnapshot for every game of the league's season
        picks: PickSnapshot for the members' picks; picks on unknown or
            unscored games are ignored
        week: Restrict scoring to one week number; None scores the whole season

    Returns:
        List of LeagueStanding sorted by rank
    """
    active = sorted(
        (m for m in members if m.status == MEMBER_ACTIVE), key=lambda m: m.join_order
    )
    active_ids = {m.user_id for m in active}

    scored_games = {g.game_id: g for g in games if g.is_scored}
    scored_weeks = sorted({g.week_number for g in scored_games.values()})

    # A torn snapshot can carry the same (user, game) twice; keep the last one
    latest_picks = {}
    for pick in picks:
        if pick.user_id in active_ids and pick.game_id in scored_games:
            latest_picks[(pick.user_id, pick.game_id)] = pick

    # (user_id, week) -> [score, correct, total]
    tallies = {}
    for (user_id, game_id), pick in latest_picks.items():
        game = scored_games[game_id]
        tally = tallies.setdefault((user_id, game.week_number), [0, 0, 0])
        points = calculate_pick_score(pick, game)
        tally[0] += points
        tally[1] += 1 if points else 0
        tally[2] += 1

    def week_tally(user_id, week_number):
        return tallies.get((user_id, week_number), (0, 0, 0))

    scope_weeks = scored_weeks if week is None else [week]
    weekly_ranks = {
        week_number: _rank(active, lambda uid, w=week_number: week_tally(uid, w)[0])
        for week_number in set(scope_weeks) | set(scored_weeks)
    }

    def total_through(user_id, weeks):
        return sum(week_tally(user_id, w)[0] for w in weeks)

    if week is None:
        ranks = _rank(active, lambda uid: total_through(uid, scope_weeks))
        previous_ranks = (
            _rank(active, lambda uid: total_through(uid, scope_weeks[:-1]))
            if len(scope_weeks) > 1
            else {}
        )
    else:
        ranks = weekly_ranks[week]
        earlier = [w for w in scored_weeks if w < week]
        previous_ranks = weekly_ranks[earlier[-1]] if earlier else {}

    standings = []
    for member in active:
        weekly = tuple(
            WeeklyScore(
                week=w,
                score=week_tally(member.user_id, w)[0],
                correct_picks=week_tally(member.user_id, w)[1],
                total_picks=week_tally(member.user_id, w)[2],
                rank=weekly_ranks[w][member.user_id],
            )
            for w in scope_weeks
        )
        scores = [entry.score for entry in weekly]
        total = sum(scores)
        current_streak, longest_streak = pick_streaks(
            [entry.correct_picks for entry in weekly]
        )

        stats = StandingStats(
            average_score=round(total / len(scores), 2) if scores else 0.0,
            best_week=max(scores) if scores else 0,
            worst_week=min(scores) if scores else 0,
            consistency=consistency_score(scores),
            current_streak=current_streak,
            longest_streak=longest_streak,
        )
        rank = ranks[member.user_id]
        standings.append(
            LeagueStanding(
                user_id=member.user_id,
                username=member.username,
                total_score=total,
                rank=rank,
                trend=_trend(rank, previous_ranks.get(member.user_id)),
                weekly_scores=weekly,
                stats=stats,
            )
        )

    standings.sort(key=lambda standing: standing.rank)
    return standings
