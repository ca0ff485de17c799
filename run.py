from pickem import create_app, db
from pickem.models import Game, League, LeagueMember, Pick, Season, Team, User, Week

app = create_app()


@app.shell_context_processor
def make_shell_context():
    return {
        "db": db,
        "User": User,
        "League": League,
        "LeagueMember": LeagueMember,
        "Season": Season,
        "Week": Week,
        "Team": Team,
        "Game": Game,
        "Pick": Pick,
    }


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=app.config.get("DEBUG", False))
