"""
TOTP Engine (RFC 6238)

Time-based one-time passwords on top of pyotp, compatible with the common
authenticator apps: HMAC-SHA1, 6 digits, 30-second time step.

Verification accepts the current step plus `valid_window` steps either side,
so a code typed a few seconds after it rolled over still works.
"""

import binascii
from datetime import datetime, timezone
from typing import Optional, Union

import pyotp

from moneyminder.config import AuthSettings, get_settings


Timestamp = Union[datetime, int, float]

SECRET_LENGTH = 32  # base32 characters, 160 bits


def _to_datetime(moment: Optional[Timestamp]) -> datetime:
    if moment is None:
        return datetime.now(timezone.utc)
    if isinstance(moment, datetime):
        return moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)
    return datetime.fromtimestamp(int(moment), tz=timezone.utc)


def _clean_secret(secret: str) -> str:
    """Authenticator apps show secrets grouped and in any case."""
    return secret.replace(" ", "").upper()


class TOTPEngine:
    """Generates secrets and produces/checks time-based codes."""

    def __init__(
        self,
        issuer: str = "MoneyMinder",
        digits: int = 6,
        step: int = 30,
        valid_window: int = 1,
    ):
        self.issuer = issuer
        self.digits = digits
        self.step = step
        self.valid_window = valid_window

    def _totp(self, secret: str) -> pyotp.TOTP:
        return pyotp.TOTP(_clean_secret(secret), digits=self.digits, interval=self.step)

    def generate_secret(self) -> str:
        """A fresh base32 secret (unpadded, 32 characters)."""
        return pyotp.random_base32(length=SECRET_LENGTH)

    def build_provisioning_uri(
        self,
        account_label: str,
        secret: str,
        issuer_name: Optional[str] = None,
    ) -> str:
        """The otpauth:// URI an authenticator app scans from a QR code."""
        return self._totp(secret).provisioning_uri(
            name=account_label,
            issuer_name=issuer_name or self.issuer,
        )

    def generate_code(self, secret: str, moment: Optional[Timestamp] = None) -> str:
        return self._totp(secret).at(_to_datetime(moment))

    def verify_code(
        self,
        code: str,
        secret: Optional[str],
        moment: Optional[Timestamp] = None,
    ) -> bool:
        """
        Check a user-supplied code.

        Malformed input (wrong length, non-digits, undecodable secret)
        is simply not a match.
        """
        if not secret or code is None:
            return False

        candidate = str(code).replace(" ", "")
        if len(candidate) != self.digits or not candidate.isdigit():
            return False

        try:
            return self._totp(secret).verify(
                candidate,
                for_time=_to_datetime(moment),
                valid_window=self.valid_window,
            )
        except (binascii.Error, ValueError):
            return False


def create_totp_engine(settings: Optional[AuthSettings] = None) -> TOTPEngine:
    settings = settings or get_settings().auth
    return TOTPEngine(
        issuer=settings.totp_issuer,
        valid_window=settings.totp_valid_window,
    )
