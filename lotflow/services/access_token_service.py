"""
Access Token Service - ephemeral, lot-scoped read credentials.

Lifecycle:
    issue_access_token()      owner (or configured issuer role) mints a token,
                              the lot gains a token row + ``qr_generated``
                              audit entry, the scan code is rendered in memory
    validate_access_token()   read-only check: TokenNotFound / TokenExpired
    get_lot_for_reader()      read-path gate - token OR role/ownership
    prune_expired_access_tokens()  garbage collection of expired rows

A token is valid iff it is present on the lot AND ``now < expires_at``.
Validity is always computed from the expiry, so a deferred sweep can never
cause a false grant.  Tokens are not single-use.

Token values are never logged or written to the audit trail; the SHA-256
fingerprint stands in for them.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import current_app

from lotflow.core.exceptions import ForbiddenError, TokenExpiredError, TokenNotFoundError
from lotflow.models import db
from lotflow.models.audit import QrGeneratedMetadata
from lotflow.models.lot import Lot, LotAccessToken, token_fingerprint
from lotflow.services import audit_trail, user_history
from lotflow.services.code_renderer import get_code_renderer, parse_scan_payload
from lotflow.services.identity import Identity
from lotflow.services.persistence import load_lot, with_lot
from lotflow.utils.helpers import ensure_utc, isoformat, utcnow

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 24 * 60 * 60
TOKEN_BYTES = 32


# ── Configuration helpers ────────────────────────────────────────────────────


def _ttl() -> timedelta:
    return timedelta(seconds=int(current_app.config.get("ACCESS_TOKEN_TTL_SECONDS", DEFAULT_TTL_SECONDS)))


def _extra_issuer_roles() -> frozenset:
    return frozenset(current_app.config.get("ACCESS_TOKEN_ISSUER_ROLES") or ())


def can_issue(lot: Lot, actor: Identity) -> bool:
    """Owner of the lot, or a role the deployment allows to issue for any lot."""
    return lot.vendor_id == actor.actor_id or actor.role in _extra_issuer_roles()


# ── Issue ────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class IssuedAccessToken:
    lot_id: str
    token: str
    issued_at: datetime
    expires_at: datetime
    qr_data: str
    qr_image_data_url: str

    def to_dict(self) -> dict:
        return {
            "lotId": self.lot_id,
            "qrData": self.qr_data,
            "qrImageDataUrl": self.qr_image_data_url,
            "qrToken": self.token,
            "expiresAt": isoformat(self.expires_at),
        }


def issue_access_token(lot_id, actor: Identity, *, now: datetime | None = None) -> IssuedAccessToken:
    """Mint a fresh token for *lot_id* and render its scan code.

    Two issues for the same lot yield two independent tokens; neither
    invalidates the other.  The rendered image is returned to the caller
    and never stored.
    """
    renderer = get_code_renderer()

    def _mutate(lot: Lot):
        if not can_issue(lot, actor):
            raise ForbiddenError(
                "Access denied. You can only generate QR codes for your own lots.",
                role=actor.role,
            )
        user = user_history.load_acting_user(actor)

        issued_at = ensure_utc(now) if now else utcnow()
        expires_at = issued_at + _ttl()
        token = secrets.token_urlsafe(TOKEN_BYTES)
        fingerprint = token_fingerprint(token)

        rendered = renderer.render(lot.scan_payload(issued_at))

        lot.access_tokens.append(LotAccessToken(
            token=token,
            generated_at=issued_at,
            expires_at=expires_at,
            generated_by=actor.actor_id,
        ))
        audit_trail.record(
            lot, actor,
            QrGeneratedMetadata(expires_at=isoformat(expires_at), token_fingerprint=fingerprint),
            "Ephemeral QR code generated for lot",
            actor_name=user.display_name,
            now=issued_at,
        )
        user_history.mirror(
            user, "generate_qr", "lot", lot.id,
            f"Generated QR code for lot {lot.lot_number}",
            {"expiresAt": isoformat(expires_at), "tokenFingerprint": fingerprint},
            now=issued_at,
        )
        return IssuedAccessToken(
            lot_id=lot.id,
            token=token,
            issued_at=issued_at,
            expires_at=expires_at,
            qr_data=rendered.payload,
            qr_image_data_url=rendered.data_url,
        )

    issued = with_lot(lot_id, _mutate)
    logger.info(
        "Access token issued for lot %s (fp=%s, expires %s)",
        issued.lot_id, token_fingerprint(issued.token), isoformat(issued.expires_at),
        extra={"lot_id": issued.lot_id, "actor_id": actor.actor_id, "event_type": "qr_generated"},
    )
    return issued


# ── Validate ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TokenValidation:
    valid: bool
    reason: str | None = None
    expires_at: datetime | None = None

    def to_dict(self) -> dict:
        return {"valid": self.valid, "reason": self.reason, "expiresAt": isoformat(self.expires_at)}


def _find_token(lot: Lot, presented: str) -> LotAccessToken | None:
    if not presented or not isinstance(presented, str):
        return None
    # compare_digest only accepts ASCII str; caller input may be anything.
    candidate = presented.encode("utf-8")
    for row in lot.access_tokens:
        if secrets.compare_digest(row.token.encode("utf-8"), candidate):
            return row
    return None


def validate_access_token(lot: Lot, presented: str, *, now: datetime | None = None) -> TokenValidation:
    """Check *presented* against *lot*'s token set. Never writes."""
    row = _find_token(lot, presented)
    if row is None:
        return TokenValidation(valid=False, reason=TokenNotFoundError.kind)
    expires_at = ensure_utc(row.expires_at)
    if not row.is_live(now or utcnow()):
        return TokenValidation(valid=False, reason=TokenExpiredError.kind, expires_at=expires_at)
    return TokenValidation(valid=True, expires_at=expires_at)


def require_valid_token(lot: Lot, presented: str, *, now: datetime | None = None) -> None:
    """Raise TokenNotFoundError / TokenExpiredError unless the token is valid."""
    result = validate_access_token(lot, presented, now=now)
    if result.valid:
        return
    logger.info(
        "Rejected access token for lot %s: %s", lot.id, result.reason,
        extra={"lot_id": lot.id, "event_type": "token_rejected"},
    )
    if result.reason == TokenExpiredError.kind:
        raise TokenExpiredError(lot.id, expired_at=result.expires_at)
    raise TokenNotFoundError(lot.id)


def is_access_token_valid(lot_id, presented: str, *, now: datetime | None = None) -> bool:
    """Boolean gate for read paths: ``validate(lotId, token) -> bool``."""
    return validate_access_token(load_lot(lot_id), presented, now=now).valid


# ── Read path ────────────────────────────────────────────────────────────────


def get_lot_for_reader(lot_id, actor: Identity, *, token: str | None = None,
                       now: datetime | None = None) -> Lot:
    """Load a lot for reading.

    With a token the token gate replaces the role check.  Without one,
    vendors may only read their own lots; every other role may read any lot.
    """
    lot = load_lot(lot_id)
    if token:
        require_valid_token(lot, token, now=now)
        return lot
    if actor.role == "vendor" and lot.vendor_id != actor.actor_id:
        raise ForbiddenError("Access denied", role=actor.role)
    return lot


def resolve_scan(qr_data, actor: Identity, *, token: str | None = None,
                 now: datetime | None = None) -> Lot:
    """Turn the decoded text of a scanned code into the lot it names."""
    payload = parse_scan_payload(qr_data)
    return get_lot_for_reader(payload["lotId"], actor, token=token, now=now)


# ── Sweep ────────────────────────────────────────────────────────────────────


def prune_expired_access_tokens(now: datetime | None = None) -> int:
    """Delete token rows whose window has closed. Returns the number removed.

    Live tokens are never touched.  Token rows are not versioned with the
    lot, so the sweep does not contend with workflow writes.
    """
    cutoff = ensure_utc(now) if now else utcnow()
    expired = LotAccessToken.query.filter(LotAccessToken.expires_at <= cutoff).all()
    # SQLite hands back naive timestamps; re-check in Python.
    expired = [row for row in expired if not row.is_live(cutoff)]
    try:
        for row in expired:
            db.session.delete(row)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    if expired:
        logger.info(
            "Pruned %d expired access token(s)", len(expired),
            extra={"event_type": "token_sweep"},
        )
    return len(expired)
