import hashlib
import hmac

from dispatcher.core.exceptions import SignatureInvalidError, SignatureMissingError
from dispatcher.core.logging import get_logger

logger = get_logger(__name__)


def compute_signature(raw_body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()


def verify(raw_body: bytes, header: str | None, secret: str) -> None:
    """
    Raise SignatureMissingError or SignatureInvalidError if the Paystack
    signature is not exactly the hex HMAC of the bytes received.
    """
    if header is None or not header.strip():
        raise SignatureMissingError("Missing signature")

    expected = compute_signature(raw_body, secret)
    if not hmac.compare_digest(expected.encode(), header.encode("utf-8")):
        logger.error(
            "webhook_security_error",
            expected_hash=expected[:10] + "...",
            received_signature=header[:10] + "...",
        )
        raise SignatureInvalidError("Invalid signature")


def is_valid(raw_body: bytes, header: str | None, secret: str) -> bool:
    try:
        verify(raw_body, header, secret)
    except (SignatureMissingError, SignatureInvalidError):
        return False
    return True
