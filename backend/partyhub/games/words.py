from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Literal


Difficulty = Literal["easy", "medium", "hard"]


@dataclass(frozen=True)
class Prompt:
    id: str
    word: str
    category: str
    difficulty: Difficulty
    hints: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "word": self.word,
            "category": self.category,
            "difficulty": self.difficulty,
            "hints": list(self.hints),
        }


DEFAULT_PROMPTS: tuple[Prompt, ...] = (
    Prompt("1", "cat", "animals", "easy", ("pet", "meows")),
    Prompt("2", "house", "objects", "easy", ("building", "home")),
    Prompt("3", "sun", "nature", "easy", ("bright", "sky")),
    Prompt("4", "car", "vehicles", "easy", ("wheels", "drive")),
    Prompt("5", "tree", "nature", "easy", ("leaves", "trunk")),
    Prompt("6", "fish", "animals", "easy", ("water", "swim")),
    Prompt("7", "book", "objects", "easy", ("read", "pages")),
    Prompt("8", "flower", "nature", "easy", ("petals", "garden")),
    Prompt("9", "elephant", "animals", "medium", ("trunk", "large")),
    Prompt("10", "pizza", "food", "medium", ("cheese", "slice")),
    Prompt("11", "guitar", "instruments", "medium", ("strings", "music")),
    Prompt("12", "bicycle", "vehicles", "medium", ("pedals", "two wheels")),
    Prompt("13", "computer", "technology", "medium", ("screen", "keyboard")),
    Prompt("14", "rainbow", "nature", "medium", ("colors", "arc")),
    Prompt("15", "astronaut", "people", "medium", ("space", "helmet")),
    Prompt("16", "lighthouse", "buildings", "medium", ("beacon", "ocean")),
    Prompt("17", "democracy", "concepts", "hard", ("voting", "government")),
    Prompt("18", "microscope", "science", "hard", ("magnify", "small")),
    Prompt("19", "waterfall", "nature", "hard", ("cascade", "rocks")),
    Prompt("20", "volcano", "nature", "hard", ("eruption", "lava")),
    Prompt("21", "submarine", "vehicles", "hard", ("underwater", "periscope")),
    Prompt("22", "chandelier", "objects", "hard", ("ceiling", "crystal")),
    Prompt("23", "tornado", "weather", "hard", ("spiral", "wind")),
    Prompt("24", "archaeology", "science", "hard", ("dig", "ancient")),
)


def pick_prompt(
    rng: random.Random,
    used: set[str],
    prompts: tuple[Prompt, ...] = DEFAULT_PROMPTS,
) -> Prompt:
    """Uniform pick among prompts not in ``used``; the pool resets once exhausted."""
    available = [p for p in prompts if p.id not in used]
    if not available:
        used.clear()
        available = list(prompts)
    prompt = rng.choice(available)
    used.add(prompt.id)
    return prompt


def word_hint(word: str) -> str:
    return "".join(" " if ch == " " else "_" for ch in word)
