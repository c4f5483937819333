"""The patch document built by a script: formats, entry schemas, and slot maps."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any

from patchscript.intervals import IntervalMap
from patchscript.kernel import Kernel


class Tag(Enum):
    """Token tags for the patch-script kernel's delimiters and keywords."""

    LPAREN = auto()
    RPAREN = auto()
    LBRACE = auto()
    RBRACE = auto()
    COMMA = auto()
    PERIOD = auto()
    COLON = auto()
    PLUS = auto()
    DASH = auto()
    TRUE = auto()
    FALSE = auto()


PATCH_KERNEL = Kernel(
    delimiters={
        "(": Tag.LPAREN,
        ")": Tag.RPAREN,
        "{": Tag.LBRACE,
        "}": Tag.RBRACE,
        ",": Tag.COMMA,
        ".": Tag.PERIOD,
        ":": Tag.COLON,
        "+": Tag.PLUS,
        "-": Tag.DASH,
    },
    case_insensitive_keywords={"true": Tag.TRUE, "false": Tag.FALSE},
    comment_start=("/*",),
    comment_end="*/",
    comment_line=("//",),
    string_delimiters={'"': '"'},
    raw_string_delimiters={"`": "`"},
)


# ---------------------------------------------------------------------------
# Formats
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PatchFormat:
    """A target engine feature level and the size of its tables."""

    name: str
    level: int
    things: int
    states: int
    weapons: int
    ammo: int


FORMATS: dict[str, PatchFormat] = {
    f.name: f
    for f in (
        PatchFormat("doom19", 0, things=137, states=967, weapons=9, ammo=4),
        PatchFormat("udoom19", 0, things=137, states=967, weapons=9, ammo=4),
        PatchFormat("boom", 1, things=139, states=967, weapons=9, ammo=4),
        PatchFormat("mbf", 2, things=144, states=1089, weapons=9, ammo=4),
        PatchFormat("mbf21", 3, things=144, states=1089, weapons=9, ammo=4),
        PatchFormat("extended", 4, things=250, states=4000, weapons=9, ammo=4),
    )
}

DEFAULT_FORMAT = "doom19"


# ---------------------------------------------------------------------------
# Entry schemas
# ---------------------------------------------------------------------------


class ValueKind(Enum):
    INT = auto()
    FIXED = auto()  # decimal scaled to 16.16
    STRING = auto()
    BOOL = auto()
    NAME = auto()  # bare identifier or string


@dataclass(frozen=True, slots=True)
class PropertySpec:
    name: str
    kind: ValueKind
    since: str = DEFAULT_FORMAT  # first format that understands the property


def _schema(*specs: PropertySpec) -> dict[str, PropertySpec]:
    return {s.name: s for s in specs}


INT, FIXED, STRING, BOOL, NAME = (
    ValueKind.INT,
    ValueKind.FIXED,
    ValueKind.STRING,
    ValueKind.BOOL,
    ValueKind.NAME,
)

THING_PROPERTIES = _schema(
    PropertySpec("ednum", INT),
    PropertySpec("health", INT),
    PropertySpec("reactiontime", INT),
    PropertySpec("painchance", INT),
    PropertySpec("speed", INT),
    PropertySpec("radius", FIXED),
    PropertySpec("height", FIXED),
    PropertySpec("mass", INT),
    PropertySpec("damage", INT),
    PropertySpec("flags", INT),
    PropertySpec("solid", BOOL),
    PropertySpec("shootable", BOOL),
    PropertySpec("seesound", NAME),
    PropertySpec("painsound", NAME),
    PropertySpec("deathsound", NAME),
    PropertySpec("activesound", NAME),
    PropertySpec("obituary", STRING, since="extended"),
    PropertySpec("fastspeed", INT, since="mbf21"),
    PropertySpec("meleerange", FIXED, since="mbf21"),
    PropertySpec("infightinggroup", INT, since="mbf21"),
)

WEAPON_PROPERTIES = _schema(
    PropertySpec("ammotype", NAME),
    PropertySpec("upstate", INT),
    PropertySpec("downstate", INT),
    PropertySpec("readystate", INT),
    PropertySpec("firestate", INT),
    PropertySpec("flashstate", INT),
    PropertySpec("ammopershot", INT, since="mbf21"),
    PropertySpec("noautofire", BOOL, since="mbf21"),
)

AMMO_PROPERTIES = _schema(
    PropertySpec("max", INT),
    PropertySpec("pickup", INT),
)


@dataclass(frozen=True, slots=True)
class EntryKind:
    keyword: str
    first_index: int
    size_field: str  # PatchFormat attribute holding the table size
    properties: dict[str, PropertySpec]

    def count(self, fmt: PatchFormat) -> int:
        return getattr(fmt, self.size_field)

    def last_index(self, fmt: PatchFormat) -> int:
        return self.first_index + self.count(fmt) - 1


# Thing numbers are 1-based in patches; weapon and ammo slots are 0-based.
ENTRY_KINDS: dict[str, EntryKind] = {
    "thing": EntryKind("thing", 1, "things", THING_PROPERTIES),
    "weapon": EntryKind("weapon", 0, "weapons", WEAPON_PROPERTIES),
    "ammo": EntryKind("ammo", 0, "ammo", AMMO_PROPERTIES),
}


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------


@dataclass
class Entry:
    """One thing, weapon, or ammo record; repeated blocks update the same entry."""

    kind: str
    index: int
    name: str | None = None
    properties: dict[str, Any] = field(default_factory=dict)


def _flags(count: int, first: int = 0) -> IntervalMap[bool]:
    return IntervalMap(first, first + count - 1, False)


@dataclass
class Patch:
    """Everything a script declared, ready to be dumped or serialized."""

    format: PatchFormat
    things: dict[int, Entry] = field(default_factory=dict)
    weapons: dict[int, Entry] = field(default_factory=dict)
    ammo: dict[int, Entry] = field(default_factory=dict)
    strings: dict[str, str] = field(default_factory=dict)
    used_things: IntervalMap[bool] = field(init=False)
    free_states: IntervalMap[bool] = field(init=False)
    protected_states: IntervalMap[bool] = field(init=False)

    def __post_init__(self) -> None:
        self.used_things = _flags(self.format.things, ENTRY_KINDS["thing"].first_index)
        self.free_states = _flags(self.format.states)
        self.protected_states = _flags(self.format.states)
        # State 0 is the null state every engine relies on.
        self.protected_states.set_index(0, True)

    def table(self, kind: str) -> dict[int, Entry]:
        if kind == "thing":
            return self.things
        if kind == "weapon":
            return self.weapons
        return self.ammo

    def entry(self, kind: str, index: int) -> Entry:
        """Fetch the entry at ``index``, creating it on first use."""
        table = self.table(kind)
        if index not in table:
            table[index] = Entry(kind, index)
            if kind == "thing":
                self.used_things.set_index(index, True)
        return table[index]

    def find_entry(self, kind: str, name: str) -> Entry | None:
        """The entry of ``kind`` declared with ``name`` (any case), if any."""
        lowered = name.lower()
        for entry in self.table(kind).values():
            if entry.name is not None and entry.name.lower() == lowered:
                return entry
        return None

    def free_state_count(self) -> int:
        return self.free_states.index_width(True)

    def next_free_state(self, start: int | None = None) -> int | None:
        return self.free_states.find(True, start)

    def to_dict(self) -> dict[str, Any]:
        """Plain-data rendering suitable for ``json.dumps``."""

        def entries(table: dict[int, Entry]) -> dict[str, Any]:
            return {
                str(index): {"name": e.name, "properties": dict(e.properties)}
                for index, e in sorted(table.items())
            }

        def ranges(intervals: IntervalMap[bool]) -> list[list[int]]:
            return [[iv.start, iv.end] for iv in intervals.intervals() if iv.value]

        return {
            "format": self.format.name,
            "things": entries(self.things),
            "weapons": entries(self.weapons),
            "ammo": entries(self.ammo),
            "strings": dict(self.strings),
            "used_things": ranges(self.used_things),
            "free_states": ranges(self.free_states),
            "protected_states": ranges(self.protected_states),
        }
