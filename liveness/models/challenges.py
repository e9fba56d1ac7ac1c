import random
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Union

from .. import config


class ChallengeDirection(Enum):
    """
    Directions a head-turn challenge can ask for.
    The value is the user-facing instruction.
    """
    TURN_LEFT = "Turn your head LEFT slowly"
    TURN_RIGHT = "Turn your head RIGHT slowly"
    LOOK_UP = "Look UP slowly"
    LOOK_DOWN = "Look DOWN slowly"

    @property
    def is_horizontal(self) -> bool:
        return self in (ChallengeDirection.TURN_LEFT, ChallengeDirection.TURN_RIGHT)


@dataclass(frozen=True)
class CenterStep:
    """Hold the face centered for a number of consecutive frames."""
    kind = "center"


@dataclass(frozen=True)
class HeadStep:
    """Turn the head slowly in one direction."""
    direction: ChallengeDirection
    kind = "head"


@dataclass(frozen=True)
class BlinkStep:
    """Close and reopen both eyes."""
    kind = "blink"


ChallengeStep = Union[CenterStep, HeadStep, BlinkStep]

CENTER_INSTRUCTION = "Look straight at the camera"
BLINK_INSTRUCTION = "Please blink naturally"


def instruction_for(step: ChallengeStep) -> str:
    """Return the instruction shown while ``step`` is active."""
    if isinstance(step, CenterStep):
        return CENTER_INSTRUCTION
    if isinstance(step, HeadStep):
        return step.direction.value
    if isinstance(step, BlinkStep):
        return BLINK_INSTRUCTION
    raise TypeError(f"Unhandled challenge step: {step!r}")


def describe_step(step: ChallengeStep) -> dict:
    """JSON-friendly description of a step."""
    description = {"type": step.kind, "instruction": instruction_for(step)}
    if isinstance(step, HeadStep):
        description["direction"] = step.direction.name.lower()
    return description


class ChallengeGenerator:
    """
    Generates a random sequence of liveness challenges.

    A sequence always starts with a center hold, followed by a head turn and a
    blink for each of ``num_directions`` distinct random directions.
    """

    def __init__(self, directions: List[ChallengeDirection] = None, rng: Optional[random.Random] = None):
        """
        Args:
            directions: Directions to draw from. Defaults to all directions.
            rng: Random source, mainly for deterministic tests.
        """
        self.directions = directions if directions else list(ChallengeDirection)
        self.rng = rng if rng is not None else random.Random()

    def generate(self, num_directions: int = config.NUM_HEAD_CHALLENGES) -> List[ChallengeStep]:
        """
        Args:
            num_directions: How many distinct head turns to include.

        Returns:
            The ordered challenge sequence.
        """
        if num_directions > len(self.directions):
            raise ValueError("Number of head challenges cannot be greater than the number of available directions.")

        steps: List[ChallengeStep] = [CenterStep()]
        for direction in self.rng.sample(self.directions, num_directions):
            steps.append(HeadStep(direction))
            steps.append(BlinkStep())
        return steps
