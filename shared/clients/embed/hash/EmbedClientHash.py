import hashlib

import numpy as np

from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class EmbedClientHash(EmbedClientInterface):
    """Deterministic local embedder.

    Each text seeds a numpy generator with its SHA-256 digest and draws D
    uniform values in [-1, 1). Vectors carry no semantics beyond identity, but
    the same text always maps to the same vector, which is what tests and
    offline setups need.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Hash"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return []

    ##########################################
    ################# MODEL ##################
    ##########################################

    def _hash_vector(self, text: str) -> list[float]:
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        rng = np.random.default_rng(int.from_bytes(digest, "big"))
        return rng.uniform(-1.0, 1.0, self.embed_dimension).tolist()

    async def _do_model_embed(self, texts: list[str]) -> list[list[float]]:
        return [self._hash_vector(text) for text in texts]

    async def do_healthcheck(self) -> bool:
        return self.is_booted()
