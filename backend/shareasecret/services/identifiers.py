import re
import secrets

from shareasecret.errors import GenerationFailure

IDENTIFIER_BYTES = 24  # 192 bits
IDENTIFIER_LENGTH = IDENTIFIER_BYTES * 2
LOG_PREFIX_LENGTH = 8

_CANONICAL_IDENTIFIER = re.compile(rf"^[0-9a-f]{{{IDENTIFIER_LENGTH}}}$")


def generate_identifier() -> str:
    """Draw a fresh 192-bit identifier from the OS CSPRNG, hex encoded."""
    try:
        return secrets.token_hex(IDENTIFIER_BYTES)
    except (OSError, NotImplementedError) as e:
        raise GenerationFailure(str(e)) from e


def is_canonical_identifier(value: str) -> bool:
    """Check that a client-supplied identifier is exactly 48 lowercase hex chars."""
    return isinstance(value, str) and _CANONICAL_IDENTIFIER.fullmatch(value) is not None


def identifier_prefix(value: str) -> str:
    """Short prefix that is safe to put in logs."""
    return value[:LOG_PREFIX_LENGTH]
