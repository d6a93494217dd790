import logging
import secrets
import string
from typing import Callable, Optional

from .errors import AliasConflict, GenerationExhausted, LinkValidationError
from .store import LinkStore

logger = logging.getLogger(__name__)

# Case-sensitive alphanumeric alphabet (Base62)
CHARSET = string.digits + string.ascii_uppercase + string.ascii_lowercase

STRATEGIES = ("random", "counter")

# Paths served by the application itself
RESERVED_ALIASES = frozenset([
    'admin', 'api', 'static', 'www', 'app', 'docs', 'redoc',
    'openapi', 'health', 'status', 'login', 'logout', 'auth',
    'links', 'q'
])


def encode_base62(number: int) -> str:
    """Encode a non-negative integer with the Base62 alphabet"""
    if number < 0:
        raise ValueError("Cannot encode a negative number")

    if number == 0:
        return CHARSET[0]

    encoded = []
    base = len(CHARSET)
    while number > 0:
        number, remainder = divmod(number, base)
        encoded.append(CHARSET[remainder])

    return ''.join(reversed(encoded))


def decode_base62(code: str) -> int:
    """Decode a Base62 string back to its integer"""
    number = 0
    base = len(CHARSET)
    for char in code:
        index = CHARSET.find(char)
        if index == -1:
            raise ValueError(f"Invalid character in code: {char!r}")
        number = number * base + index
    return number


def validate_custom_alias(alias: str) -> tuple[bool, str]:
    """
    Validate custom alias for short code.

    Args:
        alias: The custom alias to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not alias:
        return False, "Alias cannot be empty"

    # Check length
    if len(alias) < 3:
        return False, "Alias must be at least 3 characters"

    if len(alias) > 20:
        return False, "Alias must be at most 20 characters"

    # Only allowed characters: a-z, A-Z, 0-9, hyphen
    allowed = set(CHARSET + '-')

    if not all(c in allowed for c in alias):
        return False, "Alias can only contain letters, digits, and hyphens"

    # Cannot start or end with hyphen
    if alias.startswith('-') or alias.endswith('-'):
        return False, "Alias cannot start or end with a hyphen"

    if alias.lower() in RESERVED_ALIASES:
        return False, f"'{alias}' is a reserved word and cannot be used"

    return True, ""


class CodeGenerator:
    """
    Produce short codes that are free on a domain.

    The "random" strategy draws every character uniformly from CHARSET.
    The "counter" strategy encodes the next store-issued ticket, offset so
    that codes start at the configured length.
    """

    def __init__(
        self,
        store: LinkStore,
        length: int = 6,
        strategy: str = "random",
        max_attempts: int = 10,
        random_code: Optional[Callable[[int], str]] = None,
    ):
        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown code strategy: {strategy}")
        if length < 1:
            raise ValueError("Code length must be positive")

        self.store = store
        self.length = length
        self.strategy = strategy
        self.max_attempts = max_attempts
        self._random_code = random_code or self._secure_random_code
        self._counter_offset = len(CHARSET) ** (length - 1)

    @staticmethod
    def _secure_random_code(length: int) -> str:
        return ''.join(secrets.choice(CHARSET) for _ in range(length))

    def _candidate(self) -> str:
        if self.strategy == "counter":
            return encode_base62(self._counter_offset + self.store.next_sequence())
        return self._random_code(self.length)

    def generate(self, custom_alias: Optional[str] = None, domain: Optional[str] = None) -> str:
        """
        Produce a short code that no active link on the domain holds.

        Args:
            custom_alias: Code requested by the caller
            domain: Domain the code will live on (None for the default domain)

        Raises:
            LinkValidationError: The alias is malformed or reserved
            AliasConflict: The alias is already taken
            GenerationExhausted: No free code found within max_attempts
        """
        if custom_alias is not None:
            is_valid, error_msg = validate_custom_alias(custom_alias)
            if not is_valid:
                raise LinkValidationError(error_msg)

            if self.store.exists(domain, custom_alias):
                raise AliasConflict(f"Alias '{custom_alias}' is already taken")

            return custom_alias

        for attempt in range(1, self.max_attempts + 1):
            code = self._candidate()
            # Reserved words are shadowed by application routes
            if code.lower() in RESERVED_ALIASES:
                continue
            if not self.store.exists(domain, code):
                if attempt > 1:
                    logger.debug(f"Generated code {code} after {attempt} attempts")
                return code

        logger.error(f"No free short code after {self.max_attempts} attempts")
        raise GenerationExhausted()
