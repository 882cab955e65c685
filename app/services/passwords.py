from __future__ import annotations

from passlib.context import CryptContext
from passlib.exc import UnknownHashError

# pbkdf2_sha256 fica para verificar hashes antigos; novos saem em bcrypt
_pwd_context = CryptContext(schemes=["bcrypt", "pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    try:
        return _pwd_context.verify(password, password_hash)
    except (UnknownHashError, ValueError):
        return False


def needs_rehash(password_hash: str) -> bool:
    return _pwd_context.needs_update(password_hash)
