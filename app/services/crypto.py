# app/services/crypto.py
"""
Cryptographic helpers for two-factor authentication.

- TOTP secrets are encrypted at rest with Fernet (TOTP_ENCRYPTION_KEY).
- Backup codes are shown once and stored as SHA-256 hashes of the
  normalized code (dashes stripped, uppercased).
"""

import io
import base64
import hashlib
import re
import secrets
import string
from cryptography.fernet import Fernet, InvalidToken
from flask import current_app
import pyotp
import qrcode

BACKUP_CODE_ALPHABET = string.ascii_uppercase + string.digits


def _fernet():
    key = current_app.config.get('TOTP_ENCRYPTION_KEY')
    if not key:
        raise ValueError("TOTP_ENCRYPTION_KEY not configured")
    return Fernet(key.encode() if isinstance(key, str) else key)


def encrypt_secret(value):
    return _fernet().encrypt(value.encode()).decode()


def decrypt_secret(encrypted):
    """
    Raises:
        ValueError: If the key is missing or the ciphertext was not produced with it
    """
    try:
        return _fernet().decrypt(encrypted.encode()).decode()
    except InvalidToken:
        raise ValueError("Unable to decrypt TOTP secret")


def generate_totp_secret():
    return pyotp.random_base32()


def verify_totp(secret, code):
    """Accepts the current code and one 30s step on either side."""
    if not secret or not code:
        return False
    return pyotp.TOTP(secret).verify(str(code).strip(), valid_window=1)


def provisioning_uri(secret, email):
    return pyotp.TOTP(secret).provisioning_uri(
        name=email,
        issuer_name=current_app.config.get('TOTP_ISSUER', 'GrantCue')
    )


def generate_qr_data_url(uri):
    """Renders the otpauth:// URI as a PNG and returns it as a data URL."""
    qr = qrcode.QRCode(version=1, box_size=10, border=4)
    qr.add_data(uri)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer, format='PNG')
    return 'data:image/png;base64,' + base64.b64encode(buffer.getvalue()).decode()


def generate_backup_codes(count=10):
    """Returns codes formatted as XXXX-XXXX."""
    codes = []
    for _ in range(count):
        raw = ''.join(secrets.choice(BACKUP_CODE_ALPHABET) for _ in range(8))
        codes.append(f"{raw[:4]}-{raw[4:]}")
    return codes


def normalize_backup_code(code):
    return re.sub(r'[^A-Za-z0-9]', '', code or '').upper()


def hash_backup_code(code):
    return hashlib.sha256(normalize_backup_code(code).encode()).hexdigest()
