from __future__ import annotations

import base64
import binascii
import hashlib
import secrets

from cryptography.fernet import Fernet, InvalidToken

from inbox.config import settings


class IntegrationSecretDecryptError(RuntimeError):
  pass


def _fernet() -> Fernet:
  key = settings.fernet_key
  # accept raw strings as well as urlsafe base64 keys
  try:
    base64.urlsafe_b64decode(key.encode("utf-8"))
    return Fernet(key.encode("utf-8"))
  except (binascii.Error, ValueError):
    b = base64.urlsafe_b64encode(key.encode("utf-8").ljust(32, b"\0")[:32])
    return Fernet(b)


def encrypt_secret(value: str) -> str:
  return _fernet().encrypt(value.encode("utf-8")).decode("utf-8")


def decrypt_secret(value: str) -> str:
  return _fernet().decrypt(value.encode("utf-8")).decode("utf-8")


def decrypt_integration_secret(value: str) -> str:
  try:
    return decrypt_secret(value)
  except InvalidToken as exc:
    raise IntegrationSecretDecryptError(
      "Integration access token cannot be decrypted with the current key; reconnect this integration."
    ) from exc


def token_hint(token: str) -> str:
  t = token.strip()
  if len(t) <= 8:
    return "****"
  return f"****{t[-4:]}"


def new_api_token() -> str:
  return f"uit_{secrets.token_urlsafe(32)}"


def api_token_hash(token: str) -> str:
  return hashlib.sha256(token.encode("utf-8")).hexdigest()
