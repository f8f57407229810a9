import copy
import sys
from pathlib import Path

import pytest

# Ensure 'src' is on sys.path for test imports without installing the package
ROOT = Path(__file__).resolve().parents[1]
src = ROOT / "src"
if str(src) not in sys.path:
    sys.path.insert(0, str(src))

SAVE_TIME = 1_700_000_000_000

_STATE = {
    "player": {
        "name": "Sawyer",
        "level": 5,
        "experience": 1200,
        "gold": 300,
        "stats": {"health": 80, "maxHealth": 100, "mana": 40, "maxMana": 50, "attack": 14},
        "equipment": {
            "weapon": "iron_sword",
            "armor": "leather_armor",
            "helmet": "iron_helmet",
            "necklace": None,
            "shield": None,
            "gloves": None,
            "boots": None,
            "ring1": None,
            "ring2": None,
            "charm": None,
        },
    },
    "inventory": [
        {"id": "potion", "quantity": 3},
        {"id": "iron_sword", "quantity": 1},
    ],
    "capturedMonsters": [{"id": "slime_1", "species": "slime"}],
    "creatures": {
        "creatures": {
            "slime_1": {
                "id": "slime_1",
                "species": "slime",
                "generation": 0,
                "breedingCount": 0,
                "exhaustionLevel": 0,
                "parentIds": [None, None],
                "inheritedAbilities": [],
                "passiveTraits": [],
            }
        }
    },
    "currentArea": "forest_path",
    "unlockedAreas": ["starting_village", "forest_path"],
    "storyFlags": {"met_sage": True},
    "completedQuests": ["tutorial"],
    "breedingAttempts": 2,
    "discoveredRecipes": ["slime_goblin"],
    "breedingMaterials": {"moss": 2},
    "totalPlayTime": 3600,
    "settings": {"musicVolume": 0.5},
    "timestamp": SAVE_TIME,
}


@pytest.fixture()
def make_state():
    """Factory for a fresh, valid game state."""

    def factory(**overrides):
        state = copy.deepcopy(_STATE)
        state.update(copy.deepcopy(overrides))
        return state

    return factory
