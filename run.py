from pigskin import create_app, db
from pigskin.models import (
    AnonymousPick,
    CustomPickCombination,
    Game,
    LeaderboardEntry,
    Pick,
    PickSourcePreference,
    User,
)

app = create_app()


@app.shell_context_processor
def make_shell_context():
    return {
        "db": db,
        "User": User,
        "Game": Game,
        "Pick": Pick,
        "AnonymousPick": AnonymousPick,
        "PickSourcePreference": PickSourcePreference,
        "CustomPickCombination": CustomPickCombination,
        "LeaderboardEntry": LeaderboardEntry,
    }


if __name__ == "__main__":
    # The reloader would start a second poller
    app.run(host="0.0.0.0", port=5000, debug=app.config.get("DEBUG", False), use_reloader=False)
