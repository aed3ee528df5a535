from __future__ import annotations

import random
import string


STANDARD_CATEGORIES = [
    "Nombre",
    "Ciudad/País",
    "Animal",
    "Fruta/Vegetal",
    "Color",
    "Cosa",
]

FUN_CATEGORIES = [
    "Excusa para cortar con tu ex",
    "Insulto de señora",
    "Lo que gritarías en una montaña rusa",
    "Razón para llegar tarde",
    "Nombre de banda de rock mediocre",
    "Algo que no debes decir en un funeral",
    "Comida que te da diarrea",
    "Lugar donde no deberías despertar",
    "Regalo terrible para un niño",
]

FUN_CATEGORIES_PER_GAME = 3

# No K, Q, W, X or Y.
LETTERS = "ABCDEFGHIJLMNOPRSTUVZ"
FALLBACK_LETTER = "A"

ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits
ROOM_CODE_LENGTH = 5


def pick_categories(rng: random.Random | None = None) -> list[str]:
    r = rng or random
    return list(STANDARD_CATEGORIES) + r.sample(FUN_CATEGORIES, FUN_CATEGORIES_PER_GAME)


def pick_letter(used: list[str] | set[str], rng: random.Random | None = None) -> str:
    r = rng or random
    available = [ch for ch in LETTERS if ch not in used]
    if not available:
        return FALLBACK_LETTER
    return r.choice(available)


def generate_room_code(rng: random.Random | None = None) -> str:
    r = rng or random
    return "".join(r.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))
