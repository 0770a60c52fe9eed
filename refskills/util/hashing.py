import base64
import hashlib

# Bump if the derivation below ever changes. init_db() records this value and refuses to
# run against a database whose refstr values were derived with another version.
REF_KEY_VERSION = "blake2b64_urlsafe_v1"

REF_KEY_LENGTH = 11


def derive_ref_key(name: str) -> str:
    """Derive the stable, URL-safe key for a reference name.

    64-bit BLAKE2b digest of the UTF-8 name, base64url-encoded without padding,
    so every key is exactly 11 characters from [A-Za-z0-9_-]. Collisions between
    distinct names are possible in principle; the key shortens identifiers, it
    does not prove uniqueness.
    """
    digest = hashlib.blake2b(name.encode("utf-8"), digest_size=8).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")
