import pyotp

from .config import get_settings


def generate_otp_code() -> str:
    """Fixed-width numeric code from a throwaway HOTP secret."""
    settings = get_settings()
    hotp = pyotp.HOTP(pyotp.random_base32(), digits=settings.otp_digits)
    return hotp.at(0)
