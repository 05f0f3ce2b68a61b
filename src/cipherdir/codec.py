"""Encrypts and decrypts note contents.

The most important class is :class:`CipherCodec`. Encrypted notes are stored as :class:`EncryptedEnvelope` records,
serialized by :meth:`EncryptedEnvelope.dumps` as a small JSON object::

    {"iv":"<nonce as hex>","content":"<ciphertext as hex>","tag":"<GCM tag as hex>"}

The key is derived from the user's password with scrypt, using a fixed salt and fixed cost parameters. These values,
the field names and the lower-case hex encoding must not change, or existing notes will become unreadable.

Never log plaintext, passwords or keys.
"""

from __future__ import annotations
from dataclasses import dataclass
import json
import os
import re

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

SALT = b'xnotes_salt'
KEY_LENGTH = 32
NONCE_LENGTH = 12
TAG_LENGTH = 16
SCRYPT_N = 16384
SCRYPT_R = 8
SCRYPT_P = 1

FIELDS = ('iv', 'content', 'tag')
_HEX_RE = re.compile(r'\A(?:[0-9a-f]{2})*\Z')
_FAILURE_MESSAGE = 'Failed to decrypt. Invalid password or corrupted file.'


class DecryptionError(Exception):
    """Raised when a note cannot be decrypted.

    A wrong password and a corrupted file produce the same error and message, so that failures do not reveal
    which one happened.
    """
    def __init__(self, message: str = _FAILURE_MESSAGE):
        super().__init__(message)
        self.message = message


class EnvelopeParseError(DecryptionError):
    """Raised when stored data is not a well-formed envelope record."""
    pass


@dataclass(frozen=True)
class EncryptedEnvelope:
    """One encrypted note: the nonce, the ciphertext, and the authentication tag."""

    nonce: bytes
    """Random bytes, generated fresh for every encryption. Serialized as ``iv``."""

    ciphertext: bytes
    """Same length as the plaintext. Serialized as ``content``."""

    tag: bytes
    """Authenticates the nonce, the ciphertext and the key."""

    def as_json(self) -> dict:
        """Returns a dict representing the instance, suitable for serializing as json."""
        return {
            'iv': self.nonce.hex(),
            'content': self.ciphertext.hex(),
            'tag': self.tag.hex()
        }

    def dumps(self) -> str:
        """Returns the on-disk text for this envelope."""
        return json.dumps(self.as_json(), separators=(',', ':'))

    @classmethod
    def loads(cls, text: str) -> EncryptedEnvelope:
        """Parses the on-disk text for an envelope.

        Raises :exc:`EnvelopeParseError` unless the text is a JSON object with exactly the fields ``iv``,
        ``content`` and ``tag``, each a lower-case hex string of the expected length.
        """
        try:
            data = json.loads(text)
        except ValueError:
            raise EnvelopeParseError() from None
        if not isinstance(data, dict) or not set(data.keys()) == set(FIELDS):
            raise EnvelopeParseError()
        for key in FIELDS:
            if not (isinstance(data[key], str) and _HEX_RE.match(data[key])):
                raise EnvelopeParseError()
        nonce = bytes.fromhex(data['iv'])
        tag = bytes.fromhex(data['tag'])
        if not (len(nonce) == NONCE_LENGTH and len(tag) == TAG_LENGTH):
            raise EnvelopeParseError()
        return cls(nonce=nonce, ciphertext=bytes.fromhex(data['content']), tag=tag)


def derive_key(password: str) -> bytes:
    """Derives the 32-byte AES key for a password.

    This is deliberately slow and memory-hard. It always produces the same key for the same password.
    """
    kdf = Scrypt(salt=SALT, length=KEY_LENGTH, n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P)
    return kdf.derive(password.encode('utf-8'))


class CipherCodec:
    """Converts between plaintext and :class:`EncryptedEnvelope` using AES-256-GCM.

    Instances hold no state; the key is derived again for every call, so no key material outlives the call.
    """

    def encrypt(self, plaintext: bytes, password: str) -> EncryptedEnvelope:
        """Encrypts the plaintext under a key derived from the password.

        A new random nonce is used each time, so encrypting the same plaintext twice gives different envelopes.
        """
        nonce = os.urandom(NONCE_LENGTH)
        sealed = AESGCM(derive_key(password)).encrypt(nonce, plaintext, None)
        return EncryptedEnvelope(nonce=nonce, ciphertext=sealed[:-TAG_LENGTH], tag=sealed[-TAG_LENGTH:])

    def decrypt(self, envelope: EncryptedEnvelope, password: str) -> bytes:
        """Verifies and decrypts the envelope.

        Raises :exc:`DecryptionError` if the password is wrong or any part of the envelope was altered.
        """
        if not (len(envelope.nonce) == NONCE_LENGTH and len(envelope.tag) == TAG_LENGTH):
            raise DecryptionError()
        try:
            return AESGCM(derive_key(password)).decrypt(envelope.nonce, envelope.ciphertext + envelope.tag, None)
        except InvalidTag:
            raise DecryptionError() from None

    def seal(self, plaintext: bytes, password: str) -> bytes:
        """Encrypts a note and returns the bytes to store on disk."""
        return self.encrypt(plaintext, password).dumps().encode('utf-8')

    def unseal(self, data: bytes, password: str) -> bytes:
        """Parses bytes read from disk and decrypts them.

        Raises :exc:`DecryptionError` (or its subclass :exc:`EnvelopeParseError`) on any failure.
        """
        try:
            text = data.decode('utf-8')
        except UnicodeDecodeError:
            raise EnvelopeParseError() from None
        return self.decrypt(EncryptedEnvelope.loads(text), password)
