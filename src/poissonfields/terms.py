from __future__ import annotations

from collections.abc import Sequence

import numpy as np

NOUNS: tuple[str, ...] = (
    "anchor", "apple", "astronaut", "balloon", "banana", "bicycle", "bird", "boot",
    "bottle", "butterfly", "cactus", "camera", "candle", "car", "cat", "chair",
    "cloud", "clock", "crown", "cupcake", "diamond", "dinosaur", "dog", "donut",
    "dragon", "drum", "duck", "elephant", "feather", "fish", "flamingo", "flower",
    "frog", "ghost", "giraffe", "guitar", "hamburger", "hat", "helicopter", "horse",
    "key", "kite", "lamp", "leaf", "lemon", "lighthouse", "lobster", "mushroom",
    "octopus", "owl", "palm tree", "panda", "parrot", "penguin", "piano", "pineapple",
    "pizza", "planet", "pumpkin", "rabbit", "robot", "rocket", "rose", "sailboat",
    "shark", "shoe", "skull", "snail", "snowflake", "spaceship", "star", "strawberry",
    "sunflower", "sword", "teapot", "tiger", "tooth", "tractor", "trumpet", "turtle",
    "umbrella", "unicorn", "violin", "watermelon", "whale", "wizard",
)


def pick_term(rng: np.random.Generator, nouns: Sequence[str] = NOUNS) -> str:
    """Return a noun drawn uniformly from ``nouns``."""
    if not nouns:
        raise ValueError("noun list is empty")
    return nouns[int(rng.integers(len(nouns)))]
