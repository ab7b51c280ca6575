"""
Constants shared across the defensive matchup tracker.
"""

from dline.database.models import TeamRole

# Call-Your-Line: a point is played by at most seven defenders
MAX_LINE_SIZE = 7

# Privilege order used by the access gate (higher value = more privileged)
ROLE_HIERARCHY = {
    TeamRole.VIEWER: 0,
    TeamRole.MEMBER: 1,
    TeamRole.ADMIN: 2,
    TeamRole.OWNER: 3,
}

# Random code lengths
INVITE_CODE_LENGTH = 6
SHARE_CODE_LENGTH = 10
SLUG_SUFFIX_LENGTH = 6
MAX_SLUG_LENGTH = 50

# Draft point state relayed over the socket is cached for five minutes
DRAFT_CACHE_TTL_SECONDS = 300

CSV_HEADERS = [
    "Game",
    "Opponent",
    "Location",
    "Date",
    "Point #",
    "Got Break",
    "Wind Speed",
    "Wind Direction",
    "Offensive Player",
    "Position",
    "Defender",
    "Result",
    "Notes",
]

ROSTER_CSV_HEADERS = ["Name", "Position", "Active", "Notes"]
