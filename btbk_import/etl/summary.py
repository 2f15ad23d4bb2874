"""
Daily summary model.

A DailySummary is the per-date record the rest of the application reads and
edits. Imports create it with neutral defaults the first time they meet a
date and afterwards only touch counters and the medication log.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

IMPORT_PLACEHOLDER_MEAL = "Non renseigné (import BTBK)"
IMPORT_DEFAULT_NOTES = "Import automatique Baby Tracker"
DEFAULT_MOOD = "calme"
DEFAULT_ENERGY_LEVEL = 5


@dataclass
class MealPlan:
    breakfast: str
    lunch: str
    snack: str
    dinner: str


@dataclass
class SleepStats:
    naps: int = 0
    total_hours: float = 0
    night_hours: float = 0
    nap_hours: float = 0
    night_wakings: int = 0


@dataclass
class HygieneStats:
    diapers: int = 0
    baths: int = 0
    medications: str = ""


@dataclass
class Activity:
    time: str
    description: str


@dataclass
class DailySummary:
    """
    Summary of one calendar date.

    version is 0 for a summary that has never been stored; the repository
    bumps it on every save.
    """

    date: str
    mood: str
    energy_level: int
    meals: MealPlan
    sleep: SleepStats = field(default_factory=SleepStats)
    hygiene: HygieneStats = field(default_factory=HygieneStats)
    activities: List[Activity] = field(default_factory=list)
    notes: str = ""
    version: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with the field names the web front end expects."""
        return {
            "date": self.date,
            "mood": self.mood,
            "energyLevel": self.energy_level,
            "meals": {
                "breakfast": self.meals.breakfast,
                "lunch": self.meals.lunch,
                "snack": self.meals.snack,
                "dinner": self.meals.dinner,
            },
            "sleep": {
                "naps": self.sleep.naps,
                "totalHours": self.sleep.total_hours,
                "nightHours": self.sleep.night_hours,
                "napHours": self.sleep.nap_hours,
                "nightWakings": self.sleep.night_wakings,
            },
            "hygiene": {
                "diapers": self.hygiene.diapers,
                "baths": self.hygiene.baths,
                "medications": self.hygiene.medications,
            },
            "activities": [
                {"time": activity.time, "description": activity.description}
                for activity in self.activities
            ],
            "notes": self.notes,
            "version": self.version,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


def default_summary(date: str) -> DailySummary:
    """Summary created by an import for a date nobody has logged yet."""
    return DailySummary(
        date=date,
        mood=DEFAULT_MOOD,
        energy_level=DEFAULT_ENERGY_LEVEL,
        meals=MealPlan(
            breakfast=IMPORT_PLACEHOLDER_MEAL,
            lunch=IMPORT_PLACEHOLDER_MEAL,
            snack=IMPORT_PLACEHOLDER_MEAL,
            dinner=IMPORT_PLACEHOLDER_MEAL,
        ),
        notes=IMPORT_DEFAULT_NOTES,
    )
