from __future__ import annotations

import base64
import binascii
import hashlib

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ctrlglobal.errors import DecodeError

KEY_SIZE = 32
IV_SIZE = 16
BLOCK_BITS = 128


def deriveKeyIv(secret: str) -> tuple[bytes, bytes]:
    """
    Назначение:
        Детерминированно выводит ключ и IV из одного секрета.

    Алгоритм:
        - digest = sha256(secret) в hex (64 ASCII-символа);
        - key = первые 32 байта digest (AES-256), iv = первые 16 байт.

    Ограничения:
        - IV один на все сообщения при данном секрете: одинаковые plaintext
          дают одинаковый ciphertext. Схема сохранена ради совместимости с
          ранее закодированными значениями, для новых секретов не подходит.
    """
    digest = hashlib.sha256(secret.encode("utf-8")).hexdigest().encode("ascii")
    return digest[:KEY_SIZE], digest[:IV_SIZE]


class StringCipher:
    """
    Назначение/ответственность:
        Обратимое кодирование строк: AES-256-CBC + PKCS#7, печатная форма -
        base64 поверх base64-ciphertext (формат совместим с прежними данными).
    """

    def __init__(self, secret: str):
        self._secret = secret

    def _cipher(self) -> Cipher:
        key, iv = deriveKeyIv(self._secret)
        return Cipher(algorithms.AES(key), modes.CBC(iv))

    def encode(self, plaintext: str) -> str:
        padder = padding.PKCS7(BLOCK_BITS).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        encryptor = self._cipher().encryptor()
        raw = encryptor.update(padded) + encryptor.finalize()
        inner = base64.b64encode(raw)
        return base64.b64encode(inner).decode("ascii")

    def decode(self, text: str) -> str:
        """
        Поведение:
            - Невалидный base64, неверная длина/паддинг, чужой ключ или не-UTF-8
              результат -> DecodeError.
        """
        try:
            inner = base64.b64decode(text.encode("ascii"), validate=True)
            raw = base64.b64decode(inner, validate=True)
        except (binascii.Error, ValueError, UnicodeEncodeError) as exc:
            raise DecodeError("Value is not valid base64") from exc

        if not raw or len(raw) % (BLOCK_BITS // 8):
            raise DecodeError("Ciphertext length is not a multiple of the block size")

        decryptor = self._cipher().decryptor()
        padded = decryptor.update(raw) + decryptor.finalize()
        unpadder = padding.PKCS7(BLOCK_BITS).unpadder()
        try:
            data = unpadder.update(padded) + unpadder.finalize()
            return data.decode("utf-8")
        except (ValueError, UnicodeDecodeError) as exc:
            raise DecodeError("Value was not encoded with this key") from exc
