from shared.helper.HelperConfig import HelperConfig
from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.clients.store.memory.StoreClientMemory import StoreClientMemory
from shared.clients.store.sqlite.StoreClientSqlite import StoreClientSqlite

# engine name (lowercase) -> client class
STORE_ENGINES: dict[str, type[StoreClientInterface]] = {
    "memory": StoreClientMemory,
    "sqlite": StoreClientSqlite,
}


class StoreClientManager:
    """
    Manager class to handle Store client based on configuration.
    """

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.client = self._initialize_client()

    def _get_engine_from_env(self) -> str:
        """
        Reads the Store engine from ENV configuration.

        Returns:
            str: The name of the Store engine in lowercase.

        Raises:
            ValueError: If no Store engine is specified in the configuration.
        """
        engine = self.helper_config.get_string_val("STORE_ENGINE")
        if not engine:
            raise ValueError("No Store engine specified in configuration.")
        return engine.strip().lower()

    def _initialize_client(self) -> StoreClientInterface:
        """
        Initializes the Store client based on the engine specified in the configuration.

        Returns:
            StoreClientInterface: An instance of the Store client that implements the StoreClientInterface.

        Raises:
            ValueError: If the specified engine is not registered.
        """
        engine = self._get_engine_from_env()
        client_class = STORE_ENGINES.get(engine)
        if client_class is None:
            raise ValueError(f"Unsupported Store engine specified: '{engine}'. Supported: {sorted(STORE_ENGINES)}")
        client = client_class(helper_config=self.helper_config)
        self.logging.debug("Instantiated Store client for engine: %s", engine)
        return client

    def get_client(self) -> StoreClientInterface:
        """
        Returns the instantiated Store client.

        Returns:
            StoreClientInterface: The Store client instance.
        """
        return self.client
