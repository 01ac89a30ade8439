# db/enums.py
import enum

class Platform(enum.StrEnum):
    CODEFORCES = "Codeforces"
    CODECHEF = "CodeChef"
    LEETCODE = "LeetCode"

    @property
    def prefix(self) -> str:
        return _PLATFORM_PREFIXES[self]

_PLATFORM_PREFIXES = {
    Platform.CODEFORCES: "cf",
    Platform.CODECHEF: "cc",
    Platform.LEETCODE: "lc",
}

class UserRole(enum.StrEnum):
    ADMIN = "admin"
    USER = "user"
    UNREGISTERED = "unregistered"

class ContestStatus(enum.StrEnum):
    UPCOMING = "upcoming"
    ONGOING = "ongoing"
    PAST = "past"

class ContestFilter(enum.StrEnum):
    UPCOMING = "upcoming"
    ONGOING = "ongoing"
    PAST = "past"
    ALL = "all"

class SessionEventKind(enum.StrEnum):
    SIGNED_IN = "signed_in"
    SIGNED_OUT = "signed_out"
