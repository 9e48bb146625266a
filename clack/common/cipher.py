"""
Classical character ciphers used to obscure TEXT payloads.

Every cipher follows the same three-step contract:

    prepared = cipher.prepare(cleartext)    # letters only, uppercased
    secret = cipher.encrypt(prepared)
    cipher.decrypt(secret) == prepared

The helpers (clean, mod, group, shift) are public because they are useful on
their own, e.g. group(secret, 5) for the classic five-letter display.
"""
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple, Union

from .errors import CipherError, InvalidKey
from .messages import OptionEnum

ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"

_NON_ALPHA = re.compile(f"[^{ALPHABET}]")


def clean(text: str) -> str:
    ''' Uppercase text and drop every character that is not in ALPHABET '''
    return _NON_ALPHA.sub("", text.upper())


def mod(n: int, modulus: int) -> int:
    '''
    Mathematical modulo: the result is always in [0, modulus).
    Raises ValueError if modulus is less than 1.
    '''
    if modulus < 1:
        raise ValueError("modulus cannot be < 1")
    return ((n % modulus) + modulus) % modulus


def group(text: str, n: int) -> str:
    '''
    Break text into space-separated chunks of n characters; the last chunk may be shorter.
    Raises ValueError if n is less than 1.
    '''
    if n < 1:
        raise ValueError("n cannot be less than 1")
    return " ".join(text[i:i + n] for i in range(0, len(text), n))


def shift_char(c: str, n: int) -> str:
    ''' Return the letter n places after c in ALPHABET, wrapping at both ends '''
    index = ALPHABET.find(c) if len(c) == 1 else -1
    if index < 0:
        raise CipherError(f"Argument ({c!r}) not in ALPHABET")
    return ALPHABET[mod(index + n, len(ALPHABET))]


def shift(text: str, n: int) -> str:
    ''' Shift every character of text by n places; any non-ALPHABET character is an error '''
    return "".join(shift_char(c, n) for c in text)


class CipherKind(str, Enum):
    CAESAR = "CAESAR"
    VIGENERE = "VIGENERE"
    PLAYFAIR = "PLAYFAIR"

    @classmethod
    def parse(cls, name: str) -> "CipherKind":
        ''' Case-insensitive lookup that also accepts the descriptive aliases '''
        key = name.strip().upper().replace("-", "_")
        key = _KIND_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            choices = ", ".join(k.value for k in cls)
            raise ValueError(f"unknown cipher {name!r} (choose from {choices})") from None


_KIND_ALIASES = {
    "SHIFT": "CAESAR",
    "VIGNERE": "VIGENERE",
    "RUNNING_KEY": "VIGENERE",
    "DIGRAPH": "PLAYFAIR",
}


class CharacterCipher(ABC):
    """Base class for ciphers that work letter by letter over ALPHABET."""

    kind: CipherKind

    def prepare(self, cleartext: str) -> str:
        return clean(cleartext)

    @abstractmethod
    def encrypt(self, preptext: str) -> str:
        ...

    @abstractmethod
    def decrypt(self, ciphertext: str) -> str:
        ...


class CaesarCipher(CharacterCipher):
    """
    Shift cipher: every letter moves the same number of places.

    The key is either an int (taken modulo the alphabet length) or a keyword,
    in which case the alphabet position of its first letter is the shift.
    """

    kind = CipherKind.CAESAR

    def __init__(self, key: Union[int, str]):
        if isinstance(key, int) and not isinstance(key, bool):
            self.key = mod(key, len(ALPHABET))
            return
        if not isinstance(key, str) or not key:
            raise InvalidKey("Need a non-null, non-empty string")
        self.key = ALPHABET.find(key[0].upper())
        if self.key < 0:
            raise InvalidKey("First character of key not in ALPHABET")

    def encrypt(self, preptext: str) -> str:
        return shift(preptext, self.key)

    def decrypt(self, ciphertext: str) -> str:
        return shift(ciphertext, -self.key)


class VigenereCipher(CharacterCipher):
    """
    Running-key cipher: letter i is shifted by the alphabet position of
    key[i mod len(key)].
    """

    kind = CipherKind.VIGENERE

    def __init__(self, key: Optional[str]):
        if not key:
            raise InvalidKey("Need a non-null, non-empty string")
        if clean(key) != key.upper():
            raise InvalidKey("Key must contain only alphabetic characters")
        self.key = key.upper()
        self._shifts = [ALPHABET.index(c) for c in self.key]

    def _apply(self, text: str, sign: int) -> str:
        n = len(self._shifts)
        return "".join(shift_char(c, sign * self._shifts[i % n]) for i, c in enumerate(text))

    def encrypt(self, preptext: str) -> str:
        return self._apply(preptext, 1)

    def decrypt(self, ciphertext: str) -> str:
        return self._apply(ciphertext, -1)


class PlayfairCipher(CharacterCipher):
    """
    Digraph cipher over a 5x5 matrix built from a keyword.

    The matrix holds the keyword's letters (deduplicated, J folded into I)
    followed by the rest of the alphabet without J. Text is enciphered two
    letters at a time:

    * same row: each letter moves one column right
    * same column: each letter moves one row down
    * otherwise: each letter takes the other letter's column

    Decryption moves left/up instead; the rectangle rule undoes itself.
    """

    kind = CipherKind.PLAYFAIR
    SIZE = 5
    FILLER = "X"

    def __init__(self, key: Optional[str]):
        if key is None:
            raise InvalidKey("key must be a non-null string")
        self.key = clean(key).replace("J", "I")
        letters: List[str] = []
        for c in self.key + ALPHABET.replace("J", ""):
            if c not in letters:
                letters.append(c)
        self.matrix = [letters[r * self.SIZE:(r + 1) * self.SIZE] for r in range(self.SIZE)]
        self._pos = {c: divmod(i, self.SIZE) for i, c in enumerate(letters)}

    def prepare(self, cleartext: str) -> str:
        text = clean(cleartext).replace("J", "I")
        out = []
        i = 0
        while i < len(text):
            a = text[i]
            b = text[i + 1] if i + 1 < len(text) else None
            if b is None or a == b:
                # lone last letter, or a doubled pair: pad with filler and
                # let the second letter (if any) start the next digraph
                out.append(a + self.FILLER)
                i += 1
            else:
                out.append(a + b)
                i += 2
        return "".join(out)

    def _locate(self, c: str) -> Tuple[int, int]:
        try:
            return self._pos[c]
        except KeyError:
            raise CipherError(f"Character {c!r} not found in matrix") from None

    def _transform(self, text: str, step: int) -> str:
        if len(text) % 2:
            raise CipherError("Playfair text must have an even number of letters")
        size = self.SIZE
        out = []
        for i in range(0, len(text), 2):
            ra, ca = self._locate(text[i])
            rb, cb = self._locate(text[i + 1])
            if ra == rb:
                out.append(self.matrix[ra][mod(ca + step, size)])
                out.append(self.matrix[rb][mod(cb + step, size)])
            elif ca == cb:
                out.append(self.matrix[mod(ra + step, size)][ca])
                out.append(self.matrix[mod(rb + step, size)][cb])
            else:
                out.append(self.matrix[ra][cb])
                out.append(self.matrix[rb][ca])
        return "".join(out)

    def encrypt(self, preptext: str) -> str:
        return self._transform(preptext, 1)

    def decrypt(self, ciphertext: str) -> str:
        return self._transform(ciphertext, -1)


def make_cipher(kind: CipherKind, key: str) -> CharacterCipher:
    ''' Build the cipher named by kind. A Caesar key that looks like an integer is used as a shift. '''
    kind = CipherKind(kind)
    if kind is CipherKind.CAESAR:
        try:
            return CaesarCipher(int(key))
        except ValueError:
            return CaesarCipher(key)
    if kind is CipherKind.VIGENERE:
        return VigenereCipher(key)
    return PlayfairCipher(key)


_TRUE = {"TRUE", "YES", "ON", "1"}
_FALSE = {"FALSE", "NO", "OFF", "0"}


@dataclass
class CipherSettings:
    """
    Cipher configuration for one session, changed one field at a time by
    OPTION messages.
    """
    key: Optional[str] = None
    name: Optional[CipherKind] = None
    enabled: bool = False

    def apply(self, option: OptionEnum, value: str) -> None:
        '''
        Update exactly the field named by option.
        Raises ValueError (leaving every field untouched) if value is malformed.
        '''
        option = OptionEnum(option)
        if option is OptionEnum.CIPHER_KEY:
            if not value or not value.strip():
                raise ValueError("cipher key must be non-empty")
            self.key = value.strip()
        elif option is OptionEnum.CIPHER_NAME:
            self.name = CipherKind.parse(value)
        else:
            flag = value.strip().upper()
            if flag in _TRUE:
                self.enabled = True
            elif flag in _FALSE:
                self.enabled = False
            else:
                raise ValueError(f"cannot interpret {value!r} as on/off")

    def build(self) -> CharacterCipher:
        ''' Return the configured cipher; CipherError if the name or key is missing '''
        if self.name is None:
            raise CipherError("no cipher name set (OPTION name <cipher>)")
        if self.key is None:
            raise CipherError("no cipher key set (OPTION key <key>)")
        return make_cipher(self.name, self.key)
