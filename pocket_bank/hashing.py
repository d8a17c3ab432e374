"""
Password digests.

SHA-256 encoded as URL-safe base64, so stored digests stay readable in the
JSON data file.
"""

import base64
import hashlib
import hmac


class PasswordHasher:
    """One-way digest of a credential string"""

    def digest(self, secret: str) -> str:
        """Return the fixed-length (44 character) digest of secret"""
        raw = hashlib.sha256(secret.encode("utf-8")).digest()
        return base64.urlsafe_b64encode(raw).decode("ascii")

    def verify(self, secret: str, digest: str) -> bool:
        """Check secret against a stored digest in constant time"""
        return hmac.compare_digest(
            self.digest(secret).encode("utf-8"), (digest or "").encode("utf-8")
        )
