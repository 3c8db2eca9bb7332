import logging

from passlib.context import CryptContext
from passlib.handlers import bcrypt as passlib_bcrypt

logging.getLogger("passlib.handlers.bcrypt").setLevel(logging.ERROR)


def _install_bcrypt_compat() -> None:
    """Let passlib run on bcrypt releases that reject secrets over 72 bytes."""
    backend = passlib_bcrypt._BcryptBackend
    if getattr(backend, "_coursecert_compat", False):
        return
    original_verify = backend.verify.__func__

    def verify(cls, secret, hash, **context):
        try:
            return original_verify(cls, secret, hash, **context)
        except ValueError as exc:
            if "longer than 72 bytes" in str(exc):
                return False
            raise

    backend.verify = classmethod(verify)
    # skips the wraparound self-test, which hashes a 255 byte secret
    backend._workrounds_initialized = True
    backend._coursecert_compat = True


_install_bcrypt_compat()

# plain bcrypt hashes are still accepted and upgraded on the next login
pwd_ctx = CryptContext(schemes=["bcrypt_sha256", "bcrypt"], deprecated=["bcrypt"])


def hash_password(plain: str) -> str:
    return pwd_ctx.hash(plain)


def check_password(plain: str, hashed: str) -> bool:
    if not plain or not hashed:
        return False
    try:
        return pwd_ctx.verify(plain, hashed)
    except ValueError:
        return False


def password_needs_rehash(hashed: str) -> bool:
    try:
        return pwd_ctx.needs_update(hashed)
    except ValueError:
        return False
