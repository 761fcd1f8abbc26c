"""The built-in macro library.

Maps every system variable path to a short description. Agent outputs and
data store fields are not listed here; they depend on the flow.
"""

CHARACTER_FIELDS = ("id", "name", "description", "example_dialog", "entries")
SESSION_FIELDS = (
    "scenario",
    "entries",
    "char_entries",
    "plot_entries",
    "duration",
    "idle_duration",
)
TURN_FIELDS = ("char_id", "char_name", "content")
CAST_GROUPS = ("all", "active", "inactive")

SYSTEM_VARIABLES: dict[str, str] = {
    "char": "Current character",
    **{f"char.{name}": f"Current character {name}" for name in CHARACTER_FIELDS},
    "user": "User persona",
    **{f"user.{name}": f"User persona {name}" for name in CHARACTER_FIELDS},
    "cast.all": "All characters in the session",
    "cast.active": "Characters taking part in the current scene",
    "cast.inactive": "Characters not taking part in the current scene",
    **{f"session.{name}": f"Session {name}" for name in SESSION_FIELDS},
    "history": "Chat history, one line per turn",
    **{f"turn.{name}": f"History turn {name} (history messages only)" for name in TURN_FIELDS},
    "response": "Final response text",
}

# scopes that are fixed; everything else is an agent key or a data store field
SYSTEM_SCOPES = frozenset(
    {"char", "user", "cast", "session", "history", "turn", "toggle", "response", "dataStore"}
)


def scope_of(path: str) -> str:
    return path.split(".", 1)[0]


def is_system_variable(path: str) -> bool:
    """True for library paths, toggle.<name> and dataStore.<name>."""
    if path in SYSTEM_VARIABLES:
        return True
    scope, _, rest = path.partition(".")
    return scope in ("toggle", "dataStore") and bool(rest) and "." not in rest


def is_turn_variable(path: str) -> bool:
    return scope_of(path) == "turn"
