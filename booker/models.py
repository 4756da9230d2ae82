"""Shared data models passed between the protocol steps."""

from dataclasses import dataclass, field
from datetime import date


@dataclass(frozen=True)
class SlotRecord:
    """One reservable tee time parsed from a LaunchReserver descriptor."""

    course_id: str
    date: str       # as the portal writes it, e.g. "9/6/2025"
    time: str       # e.g. "7:50 AM"
    tee: str        # "1" for the first tee, anything else is the tenth
    players: int
    available: int

    @property
    def total_capacity(self) -> int:
        return self.players + self.available

    @property
    def hole(self) -> str:
        return "1" if self.tee == "1" else "10"

    @property
    def tee_label(self) -> str:
        return "1st Tee" if self.tee == "1" else "10th Tee"


@dataclass(frozen=True)
class Guest:
    """A roster entry. ``player_id`` is the portal combo value, e.g. ``1036745_Guest``."""

    name: str
    player_id: str
    transport: str = ""


@dataclass(frozen=True)
class CatalogOpen:
    target_date: date
    slots: list[SlotRecord] = field(default_factory=list)


@dataclass(frozen=True)
class CatalogClosed:
    target_date: date
    message: str
    countdown: str = ""


@dataclass(frozen=True)
class SessionExpired:
    target_date: date


Catalog = CatalogOpen | CatalogClosed | SessionExpired


@dataclass(frozen=True)
class Confirmation:
    """A verified reservation."""

    slot: SlotRecord
    confirmed_date: str
    confirmed_time: str
