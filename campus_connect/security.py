from passlib.context import CryptContext

# pbkdf2_sha256 first to avoid bcrypt's 72-byte limit; bcrypt hashes still verify
pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)
