from pickem import db  # noqa: F401 - imported for model imports

from .game import Game
from .league import League
from .league_member import LeagueMember
from .pick import Pick
from .season import Season
from .team import Team
from .user import User
from .week import Week

__all__ = [
    "User",
    "League",
    "LeagueMember",
    "Season",
    "Week",
    "Team",
    "Game",
    "Pick",
]
