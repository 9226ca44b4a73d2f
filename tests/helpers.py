"""Shared test helper functions for Atende tests.

Plain functions (not fixtures) imported by individual test modules.
"""

from __future__ import annotations

import base64
import time
from contextlib import contextmanager
from unittest.mock import MagicMock

import jwt
from cryptography.hazmat.primitives.asymmetric import rsa

from atende.api.auth import CurrentUser
from atende.api.session import SessionContext
from atende.domain.models import Attendant, Company, Contact, Message

ISSUER = "https://auth.example.com"
AUDIENCE = "atende-api"
JWKS_URL = "https://auth.example.com/.well-known/jwks.json"

OIDC_ENV = {
    "OIDC_ISSUER": ISSUER,
    "OIDC_AUDIENCE": AUDIENCE,
    "OIDC_JWKS_URL": JWKS_URL,
}


# ── JWT ───────────────────────────────────────────────────────────────────────


def _generate_rsa_keypair():
    """Generate RSA key pair for test JWT signing."""
    private_key = rsa.generate_private_key(
        public_exponent=65537,
        key_size=2048,
    )
    return private_key, private_key.public_key()


def _create_jwks(public_key, kid: str = "test-key-1") -> dict:
    """Create JWKS from public key."""
    public_numbers = public_key.public_numbers()

    def int_to_base64(n: int) -> str:
        byte_length = (n.bit_length() + 7) // 8
        return base64.urlsafe_b64encode(n.to_bytes(byte_length, "big")).rstrip(b"=").decode()

    return {
        "keys": [
            {
                "kty": "RSA",
                "use": "sig",
                "alg": "RS256",
                "kid": kid,
                "n": int_to_base64(public_numbers.n),
                "e": int_to_base64(public_numbers.e),
            }
        ]
    }


def _create_token(
    private_key,
    kid: str = "test-key-1",
    sub: str = "user-123",
    iss: str = ISSUER,
    aud: str = AUDIENCE,
    exp: int | None = None,
    azp: str | None = None,
    **claims,
) -> str:
    """Create signed JWT for testing."""
    now = int(time.time())
    payload = {
        "sub": sub,
        "iss": iss,
        "aud": aud,
        "exp": exp if exp is not None else now + 3600,
        "iat": now,
        **claims,
    }
    if azp:
        payload["azp"] = azp

    return jwt.encode(payload, private_key, algorithm="RS256", headers={"kid": kid})


# ── Database ──────────────────────────────────────────────────────────────────


def fake_txn(cursor: MagicMock | None = None):
    """Drop-in for atende.infra.db.txn yielding a MagicMock cursor."""
    cur = cursor if cursor is not None else MagicMock()

    @contextmanager
    def _txn(conn=None):
        yield cur

    return _txn


# ── Builders ──────────────────────────────────────────────────────────────────


def make_company(**overrides) -> Company:
    fields = {
        "id": "company-1",
        "api_key": "key-1",
        "name": "Loja Azul",
        "phone_number": "5511900000000",
        "email": "contato@lojaazul.com.br",
        "user_id": "owner-1",
        "max_attendants": 3,
        "payment_notification_day": 10,
    }
    fields.update(overrides)
    return Company(**fields)


def make_attendant(**overrides) -> Attendant:
    fields = {
        "id": "att-1",
        "company_id": "company-1",
        "name": "Ana",
        "department_id": "dept-1",
        "sector_id": "sector-1",
        "email": "ana@lojaazul.com.br",
        "is_active": True,
        "user_id": "user-att",
    }
    fields.update(overrides)
    return Attendant(**fields)


def make_message(**overrides) -> Message:
    fields = {
        "id": "1",
        "numero": "5511999998888",
        "pushname": "Maria",
        "tipomessage": "conversation",
        "message": "Oi",
        "apikey_instancia": "key-1",
        "company_id": "company-1",
        "department_id": "dept-1",
        "sector_id": "sector-1",
    }
    fields.update(overrides)
    return Message(**fields)


def make_contact(**overrides) -> Contact:
    fields = {
        "id": "contact-1",
        "company_id": "company-1",
        "phone_number": "5511999998888",
        "name": "Maria Silva",
        "department_id": "dept-1",
        "sector_id": "sector-1",
    }
    fields.update(overrides)
    return Contact(**fields)


def admin_session(company: Company | None = None) -> SessionContext:
    return SessionContext(user=CurrentUser(id="owner-1"), company=company or make_company())


def attendant_session(attendant: Attendant | None = None, company: Company | None = None) -> SessionContext:
    return SessionContext(
        user=CurrentUser(id="user-att"),
        company=company or make_company(),
        attendant=attendant or make_attendant(),
    )


def super_admin_session() -> SessionContext:
    return SessionContext(user=CurrentUser(id="root-1"), is_super_admin=True)
