from shared.helper.HelperConfig import HelperConfig
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.embed.hash.EmbedClientHash import EmbedClientHash
from shared.clients.embed.ollama.EmbedClientOllama import EmbedClientOllama

# engine name (lowercase) -> client class
EMBED_ENGINES: dict[str, type[EmbedClientInterface]] = {
    "hash": EmbedClientHash,
    "ollama": EmbedClientOllama,
}


class EmbedClientManager:
    """
    Manager class to handle Embed client based on configuration.
    """

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.client = self._initialize_client()

    def _get_engine_from_env(self) -> str:
        """
        Reads the Embed engine from ENV configuration.

        Returns:
            str: The name of the Embed engine in lowercase.

        Raises:
            ValueError: If no Embed engine is specified in the configuration.
        """
        engine = self.helper_config.get_string_val("EMBED_ENGINE")
        if not engine:
            raise ValueError("No Embed engine specified in configuration.")
        return engine.strip().lower()

    def _initialize_client(self) -> EmbedClientInterface:
        """
        Initializes the Embed client based on the engine specified in the configuration.

        Returns:
            EmbedClientInterface: An instance of the Embed client that implements the EmbedClientInterface.

        Raises:
            ValueError: If the specified engine is not registered.
        """
        engine = self._get_engine_from_env()
        client_class = EMBED_ENGINES.get(engine)
        if client_class is None:
            raise ValueError(f"Unsupported Embed engine specified: '{engine}'. Supported: {sorted(EMBED_ENGINES)}")
        client = client_class(helper_config=self.helper_config)
        self.logging.debug("Instantiated Embed client for engine: %s", engine)
        return client

    def get_client(self) -> EmbedClientInterface:
        """
        Returns the instantiated Embed client.

        Returns:
            EmbedClientInterface: The Embed client instance.
        """
        return self.client
