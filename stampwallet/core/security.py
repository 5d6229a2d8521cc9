import hmac


def verify_auth_token(authorization: str | None) -> str | None:
    """Extract auth token from Authorization header (Apple Wallet passes)."""
    if not authorization:
        return None
    if authorization.startswith("ApplePass "):
        return authorization[10:]
    return None


def tokens_match(expected: str | None, provided: str | None) -> bool:
    """Compare pass authentication tokens in constant time."""
    if not expected or not provided:
        return False
    return hmac.compare_digest(expected.encode(), provided.encode())
