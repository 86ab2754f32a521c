from abc import ABC, abstractmethod
from typing import Any

from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig

# EnvConfig.val_type -> HelperConfig reader
_CONFIG_READERS = {
    "string": HelperConfig.get_string_val,
    "number": HelperConfig.get_number_val,
    "bool": HelperConfig.get_bool_val,
    "list": HelperConfig.get_list_val,
    "positive_int": HelperConfig.get_positive_int_val,
}


class ClientInterface(ABC):
    """Base class of every backend client (embed, store).

    Engine settings follow the "{TYPE}_{ENGINE}_{KEY}" scheme, e.g.
    STORE_SQLITE_PATH. All settings an engine declares in
    _get_required_config() are read and validated once in the constructor, so
    a misconfigured engine fails at startup instead of on first use.

    Lifecycle: boot() acquires resources, close() releases them. Subclasses
    extend both and must call super() so is_booted() stays accurate.
    """

    def __init__(self, helper_config: HelperConfig):
        self.logging = helper_config.get_logger()
        self._helper_config = helper_config
        self._booted = False
        self._config: dict[str, Any] = self.validate_full_configuration()

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def validate_full_configuration(self) -> dict[str, Any]:
        """
        Reads every engine setting declared in _get_required_config().

        Returns:
            dict[str, Any]: Raw key (e.g. "PATH") -> resolved value.

        Raises:
            ValueError: If a required setting is missing or a value is invalid.
        """
        return {
            config.env_key.upper(): self.get_config_val(raw_key=config.env_key, default=config.default, val_type=config.val_type)
            for config in self._get_required_config()
        }

    def is_booted(self) -> bool:
        return self._booted

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def get_client_type(self) -> str:
        """
        Returns the type of the client in lowercase. E.g. "embed"
        """
        return self._get_client_type().lower()

    @abstractmethod
    def _get_client_type(self) -> str:
        pass

    def get_engine_name(self) -> str:
        """
        Returns the engine name in lowercase. E.g. "sqlite"
        """
        return self._get_engine_name().lower()

    @abstractmethod
    def _get_engine_name(self) -> str:
        pass

    def get_display_name(self) -> str:
        """
        Returns "{type}/{engine}" for log lines. E.g. "store/sqlite"
        """
        return f"{self.get_client_type()}/{self.get_engine_name()}"

    ################ CONFIG ##################
    @abstractmethod
    def _get_required_config(self) -> list[EnvConfig]:
        """
        Returns all engine specific settings of the client.

        Returns:
            list[EnvConfig]: One entry per setting. default=None marks a setting as required.
        """
        pass

    def _get_config_key_name(self, raw_key: str) -> str:
        """
        Returns:
            str: The full environment variable name. E.g. "STORE_SQLITE_PATH"
        """
        return f"{self.get_client_type().upper()}_{self.get_engine_name().upper()}_{raw_key.upper()}"

    def get_config_val(self, raw_key: str, default: Any = None, val_type: str = "string") -> Any:
        """
        Reads an engine scoped setting. Settings declared in _get_required_config()
        are served from the values validated in the constructor.

        Args:
            raw_key (str): The key without prefix (e.g. "PATH")
            default (Any): Fallback if the variable is not set. None makes it required.
            val_type (str): One of "string", "number", "bool", "list" or "positive_int"

        Raises:
            ValueError: If the setting is required but unset, or val_type is unsupported.
        """
        validated = getattr(self, "_config", None)
        if validated is not None and raw_key.upper() in validated:
            return validated[raw_key.upper()]
        reader = _CONFIG_READERS.get(val_type)
        if reader is None:
            raise ValueError(
                f"Unsupported config value type '{val_type}' for key '{raw_key}' of client '{self.get_display_name()}'."
            )
        return reader(self._helper_config, self._get_config_key_name(raw_key), default=default)

    ##########################################
    ############## LIFECYCLE #################
    ##########################################

    async def boot(self) -> None:
        """Acquire the resources the client needs (connections, models)."""
        self._booted = True

    async def close(self) -> None:
        """Release all resources acquired in boot()."""
        self._booted = False

    @abstractmethod
    async def do_healthcheck(self) -> bool:
        """Check that the client backend is usable.

        Returns:
            bool: True if healthy.

        Raises:
            Exception: If the backend is unreachable or misconfigured.
        """
        pass
