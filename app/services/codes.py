"""Short code generation.

Codes are drawn from an alphabet without characters that are easy to
confuse when read aloud or typed from print.
"""

import hashlib
import secrets
import string

# Letters and digits without 0, O, 1, l and I
SAFE_ALPHABET = "".join(
    c for c in string.ascii_letters + string.digits if c not in "0O1lI"
)

MIN_CODE_LENGTH = 1
MAX_CODE_LENGTH = 30


class CodeGenerator:
    """
    Produces candidate short codes.

    Uniqueness is not guaranteed here; the caller checks the store and
    retries on collision.
    """

    def __init__(self, alphabet: str = SAFE_ALPHABET):
        if len(set(alphabet)) != len(alphabet) or len(alphabet) < 2:
            raise ValueError("Alphabet must contain at least two distinct symbols")
        self.alphabet = alphabet

    def _check_length(self, length: int) -> None:
        if not isinstance(length, int) or not MIN_CODE_LENGTH <= length <= MAX_CODE_LENGTH:
            raise ValueError(
                f"Code length must be between {MIN_CODE_LENGTH} and {MAX_CODE_LENGTH}, got {length!r}"
            )

    def generate(self, length: int) -> str:
        """
        Random code of exactly ``length`` symbols from a CSPRNG.

        Raises:
            ValueError: If length is outside the supported range
        """
        self._check_length(length)
        return "".join(secrets.choice(self.alphabet) for _ in range(length))

    def derive_from_content(self, long_url: str, length: int) -> str:
        """
        Deterministic code derived from the SHA-256 digest of ``long_url``.

        The digest is base-converted into the alphabet. Codes longer than one
        digest supplies are extended by hashing the URL again with a counter.
        Predictable, so it is not used for regular shortening.

        Raises:
            ValueError: If length is outside the supported range
        """
        self._check_length(length)
        base = len(self.alphabet)
        symbols = []
        counter = 0
        while len(symbols) < length:
            payload = long_url.encode("utf-8")
            if counter:
                payload += b":" + str(counter).encode("ascii")
            value = int.from_bytes(hashlib.sha256(payload).digest(), "big")
            # A 256-bit digest yields at least 43 symbols in base 57
            while value and len(symbols) < length:
                value, remainder = divmod(value, base)
                symbols.append(self.alphabet[remainder])
            counter += 1
        return "".join(symbols)
