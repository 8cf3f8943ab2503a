import random
import string

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 6

_rng = random.SystemRandom()


def generate_session_code(length=CODE_LENGTH, alphabet=CODE_ALPHABET, rng=None):
    """Generate a short shareable code; uniqueness is checked by the caller."""
    rng = rng or _rng
    return ''.join(rng.choice(alphabet) for _ in range(length))


def normalize_code(code):
    return (code or '').strip().upper()
