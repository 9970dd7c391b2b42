"""
houseflip - Provably Fair Flip

Commit/reveal of the server seed and outcome derivation.

    1. Server publishes H = SHA256(server_seed)
    2. Bettor picks client_seed and nonce, places the wager
    3. Server derives digest = SHA256("server_seed:client_seed:nonce")
    4. Server reveals server_seed and rotates to a fresh commitment
    5. Bettor recomputes H and digest to audit the flip
"""

import hashlib
import hmac
import logging
import secrets
import threading
from typing import Optional, Tuple

from .flip_types import Commitment, Reveal, Side

log = logging.getLogger(__name__)

FAIR_SEED_BYTES = 32
DIGEST_DELIMITER = ":"


def mask_secret(secret: str, visible_prefix: int = 8, visible_suffix: int = 4) -> str:
    """Mask a secret for safe logging. NEVER log full secrets/seeds/keys."""
    if not secret or len(secret) <= visible_prefix + visible_suffix:
        return "***"
    return f"{secret[:visible_prefix]}...{secret[-visible_suffix:]}"


def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def generate_commitment() -> Commitment:
    """
    Generate random server seed and its commitment hash.

    Returns:
        Commitment with the seed as a 64-char hex string
    """
    server_seed = secrets.token_bytes(FAIR_SEED_BYTES).hex()
    return Commitment(server_seed=server_seed, server_hash=sha256_hex(server_seed))


def derive_outcome(server_seed: str, client_seed: str, nonce: int) -> Tuple[str, Side]:
    """
    Derive the flip outcome.

    The digest is SHA256 over the UTF-8 text "server_seed:client_seed:nonce".
    The first 4 digest bytes, read as an unsigned big-endian integer, pick
    the side: even is HEADS, odd is TAILS.

    Returns:
        (digest hex, side)
    """
    message = DIGEST_DELIMITER.join([server_seed, client_seed, str(nonce)])
    digest = hashlib.sha256(message.encode("utf-8")).digest()
    roll = int.from_bytes(digest[:4], "big")
    side = Side.HEADS if roll % 2 == 0 else Side.TAILS
    return digest.hex(), side


def verify_reveal(reveal: Reveal) -> bool:
    """Recompute commitment hash and outcome from a revealed bundle."""
    if not hmac.compare_digest(sha256_hex(reveal.server_seed), reveal.server_hash.lower()):
        return False
    digest, side = derive_outcome(reveal.server_seed, reveal.client_seed, reveal.nonce)
    return digest == reveal.digest.lower() and side == reveal.result


class CommitmentStore:
    """
    Holds the single active server seed commitment.

    A seed is handed out by reveal_and_rotate() exactly once; the fresh
    commitment is installed under the same lock before the call returns.
    """

    def __init__(self, initial: Optional[Commitment] = None):
        self._lock = threading.Lock()
        self._current = initial or generate_commitment()

    def current_hash(self) -> str:
        with self._lock:
            return self._current.server_hash

    def _rotate(self) -> Tuple[Commitment, str]:
        with self._lock:
            revealed = self._current
            self._current = generate_commitment()
            next_hash = self._current.server_hash
        log.info(f"Commitment rotated: revealed {mask_secret(revealed.server_hash)}, "
                 f"next {mask_secret(next_hash)}")
        return revealed, next_hash

    def reveal_and_rotate(self) -> Commitment:
        """Return the active commitment and replace it with a fresh one."""
        revealed, _ = self._rotate()
        return revealed

    def flip(self, client_seed: str, nonce: int) -> Tuple[Reveal, str]:
        """
        Derive an outcome with the active seed and rotate.

        Returns:
            (reveal, next server hash)
        """
        revealed, next_hash = self._rotate()
        digest, side = derive_outcome(revealed.server_seed, client_seed, nonce)
        reveal = Reveal(
            server_seed=revealed.server_seed,
            server_hash=revealed.server_hash,
            client_seed=client_seed,
            nonce=nonce,
            digest=digest,
            result=side,
        )
        log.debug(f"Flip {mask_secret(digest)} -> {side.value}")
        return reveal, next_hash
