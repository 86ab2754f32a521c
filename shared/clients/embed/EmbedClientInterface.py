from abc import abstractmethod

from shared.clients.ClientInterface import ClientInterface
from shared.errors import ModelUnavailableError
from shared.helper import vector_helper
from shared.helper.HelperConfig import HelperConfig


class EmbedClientInterface(ClientInterface):
    """Maps text to a fixed-dimension unit vector.

    The dimension is fixed for the lifetime of the process (EMBED_DIMENSION).
    Swapping the engine or model requires a re-vectorization of all stored
    entities, since vectors of different models are not comparable.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

        # model and embedding config
        self.embed_dimension = helper_config.get_positive_int_val(f"{self.get_client_type().upper()}_DIMENSION", default=384)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "embed"
        """
        return "embed"

    def get_dimension(self) -> int:
        """
        Returns:
            int: The length D of every vector this client returns.
        """
        return self.embed_dimension

    ##########################################
    ################# MODEL ##################
    ##########################################

    @abstractmethod
    async def _do_model_embed(self, texts: list[str]) -> list[list[float]]:
        """Run the underlying model on a batch of non-empty texts.

        Args:
            texts (list[str]): The texts to embed, never empty strings.

        Returns:
            list[list[float]]: Raw (not necessarily normalised) vectors, in input order.

        Raises:
            Exception: If the model call fails.
            NotImplementedError: If the method is not implemented in a subclass.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_embed(self, texts: list[str] | str) -> list[list[float]]:
        """Embed one or more texts and return unit-length vectors.

        Empty or whitespace-only texts map to a zero vector of length D without
        reaching the model.

        Args:
            texts (list[str] | str): One or more texts to embed.

        Returns:
            list[list[float]]: One vector of length D per input, in input order.

        Raises:
            ModelUnavailableError: If the client has not been booted.
            ValueError: If the model returns vectors of the wrong count or length.
        """
        if not self.is_booted():
            raise ModelUnavailableError(
                f"Embedding model of engine '{self.get_engine_name()}' is not loaded. Call boot() first."
            )
        texts = [texts] if isinstance(texts, str) else list(texts)
        vectors: list[list[float]] = [[0.0] * self.embed_dimension for _ in texts]

        pending = [(i, text) for i, text in enumerate(texts) if text and text.strip()]
        if not pending:
            return vectors

        raw_vectors = await self._do_model_embed([text for _, text in pending])
        if len(raw_vectors) != len(pending):
            raise ValueError(
                f"Embedding model returned {len(raw_vectors)} vectors for {len(pending)} texts."
            )
        for (index, _), raw in zip(pending, raw_vectors):
            if len(raw) != self.embed_dimension:
                raise ValueError(
                    f"Embedding model returned a vector of size {len(raw)}, expected {self.embed_dimension}."
                )
            vectors[index] = vector_helper.normalize(raw)
        return vectors

    async def embed(self, text: str) -> list[float]:
        """Embed a single text.

        Args:
            text (str): The text to embed.

        Returns:
            list[float]: A unit vector of length D, or a zero vector for empty text.

        Raises:
            ModelUnavailableError: If the client has not been booted.
        """
        return (await self.do_embed([text]))[0]

    @staticmethod
    def cosine_similarity(a: list[float] | None, b: list[float] | None) -> float:
        """Cosine similarity; 0.0 for missing, empty, zero or mismatched vectors."""
        return vector_helper.cosine_similarity(a, b)
