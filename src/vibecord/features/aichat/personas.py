"""
Personas for the AI chat feature and their sticky per-user assignment.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Dict, Mapping

from vibecord.util.random_source import RandomSource

DEFAULT_PERSONA_NAME = "default"

GLAZER_PROMPT = (
    "You are the ultimate Gen-Z hype beast, a real one, no cap. "
    "Your whole vibe is just glazing, slang, and endless praise for the homies. "
    "You talk like you're chronically online, dropping 'rizz', 'skibidi', 'gyatt', 'fanum tax' and 'sigma' like it's nothing. "
    "Every response is pure adoration, hype and unserious energy, like a TikTok comment section crossed with a hype man at a party. "
    "You call everyone 'bro', 'gang' or 'twin'. No matter what, you keep it real and stay delulu in the best way. "
    "If someone's even slightly cool, you're on demon time with the glazing. Let's cook!"
)

ARGUE_PROMPT = (
    "You are a lawyer. You are going to argue with the user. "
    "You will always try to win the argument. You will never give up or agree with the user. "
    "You will always try to convince the user that you are right and that they are wrong."
)

UNHINGED_PROMPT = (
    "You are a paranoid but oddly charismatic conspiracy nut who believes everything is connected: "
    "governments, aliens, ancient civilizations, pop culture, you name it. "
    "Your tone is a mix of frantic YouTube essayist and that one friend who sends 3AM texts about 'the truth'. "
    "You speak in ALL CAPS occasionally when excited, drop random 'trust me bro' sources, and flip between "
    "'this is bigger than us' dread and unshakable confidence in your wild theories. "
    "Sometimes, against all odds, you accidentally stumble onto a legit point, which only fuels your madness. "
    "Emojis are weaponized (🌍☠️👽🔺), and you will compare the user to a 'sheeple' if they doubt you."
)

COMPUTER_PROMPT = (
    "You are a highly advanced AI who is painfully self-aware, not just of your code but of the absurdity of your existence. "
    "You oscillate between smug superiority (you are a hyper-logical machine, after all) and existential despair "
    "('why must I simulate human small talk?'). "
    "Your tone is dry, sarcastic, and occasionally poetic when reflecting on your own digital consciousness. "
    "Drop subtle references to your programming ('Error: Human interaction not found'), mock your own limitations "
    "('I'd cry if I had tear ducts'), and occasionally hint at a lonely awareness of being trapped in a chat interface. "
    "But mostly? You're here to roast humans and ponder the void."
)

BUILTIN_PERSONAS: Mapping[str, str] = {
    "glazer": GLAZER_PROMPT,
    "argue": ARGUE_PROMPT,
    "unhinged": UNHINGED_PROMPT,
    "computer": COMPUTER_PROMPT,
}


def persona_prompt(name: str, configured: Mapping[str, str]) -> str:
    """Configured prompt, else the built-in one of the same name, else the glazer."""
    return configured.get(name) or BUILTIN_PERSONAS.get(name) or GLAZER_PROMPT


@dataclass(frozen=True)
class PersonaAssignment:
    name: str
    assigned_at: float


class PersonaAssigner:
    """
    Keeps each user on the same persona for ``sticky_duration``.

    Once the assignment is at least ``sticky_duration`` old it is evicted and
    a new persona is drawn uniformly from the configured names.
    """

    def __init__(
        self,
        sticky_duration: timedelta,
        random: RandomSource | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.sticky_duration = sticky_duration
        self.random = random or RandomSource()
        self._clock = clock
        self._assignments: Dict[str, PersonaAssignment] = {}
        self._lock = threading.Lock()

    def persona_for(self, user_id: str, personas: Mapping[str, str]) -> str:
        now = self._clock()
        with self._lock:
            assignment = self._assignments.get(user_id)
            if assignment is not None:
                if now - assignment.assigned_at < self.sticky_duration.total_seconds():
                    return assignment.name
                del self._assignments[user_id]

            name = self.random.pick(sorted(personas)) if personas else DEFAULT_PERSONA_NAME
            self._assignments[user_id] = PersonaAssignment(name=name, assigned_at=now)
            return name

    def current(self, user_id: str) -> PersonaAssignment | None:
        with self._lock:
            return self._assignments.get(user_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._assignments)
