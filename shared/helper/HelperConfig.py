"""Environment-backed settings for the chat segment search service.

Every setting is an environment variable. Keys are case-insensitive and
surrounding whitespace is ignored; an empty value counts as unset. A getter
without a default treats its key as required and raises ValueError when it is
unset.
"""

import logging
import os

_TRUE_VALUES = ("true", "1", "yes", "on")
_FALSE_VALUES = ("false", "0", "no", "off")


class HelperConfig:
    """Reads typed settings from the environment and hands out the app logger."""

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    def _read(self, key: str) -> tuple[str, str | None]:
        key = key.upper()
        raw = os.getenv(key)
        raw = raw.strip() if raw is not None else None
        return key, raw or None

    @staticmethod
    def _unset(key: str) -> ValueError:
        return ValueError(f"Environment variable '{key}' is not set.")

    ##########################################
    ################ SCALARS #################
    ##########################################

    def get_string_val(self, key: str, default: str | None = None) -> str:
        """Read a string setting.

        Raises:
            ValueError: If the variable is not set and no default is provided.
        """
        key, raw = self._read(key)
        if raw is not None:
            return raw
        if default is None:
            raise self._unset(key)
        return default

    def get_number_val(self, key: str, default: float | int | None = None) -> float | int:
        """Read a numeric setting. "42" gives an int, "0.7" a float.

        Raises:
            ValueError: If the variable is not set and no default is provided,
                        or if it is not a number.
        """
        key, raw = self._read(key)
        if raw is None:
            if default is None:
                raise self._unset(key)
            return default
        try:
            return float(raw) if "." in raw or "e" in raw.lower() else int(raw)
        except ValueError:
            raise ValueError(f"Environment variable '{key}' is not a valid number: '{raw}'.")

    def get_bool_val(self, key: str, default: bool | None = None) -> bool:
        """Read a boolean setting (true/false, 1/0, yes/no, on/off).

        Raises:
            ValueError: If the variable is not set and no default is provided,
                        or if the value is not one of the accepted words.
        """
        key, raw = self._read(key)
        if raw is None:
            if default is None:
                raise self._unset(key)
            return default
        if raw.lower() in _TRUE_VALUES:
            return True
        if raw.lower() in _FALSE_VALUES:
            return False
        raise ValueError(f"Environment variable '{key}' is not a valid boolean: '{raw}'.")

    def get_list_val(self, key: str, default: list | None = None, separator: str = ",", element_type: type = str) -> list:
        """Read a list setting such as "[a,b,c]". The brackets are optional.

        Raises:
            ValueError: If the variable is not set and no default is provided,
                        or if an element cannot be cast to element_type.
        """
        key, raw = self._read(key)
        if raw is None:
            if default is None:
                raise self._unset(key)
            return default
        if raw.startswith("[") and raw.endswith("]"):
            raw = raw[1:-1]
        try:
            return [element_type(part.strip()) for part in raw.split(separator) if part.strip()]
        except ValueError as e:
            raise ValueError(f"Environment variable '{key}' contains an invalid {element_type.__name__} element: {e}")

    ##########################################
    ############# BOUNDED VALUES #############
    ##########################################

    def get_positive_int_val(self, key: str, default: int | None = None) -> int:
        """Read a setting that must be a whole number > 0, e.g. EMBED_DIMENSION.

        Raises:
            ValueError: If the value is missing, fractional or not positive.
        """
        value = self.get_number_val(key, default=default)
        if isinstance(value, float) or value <= 0:
            raise ValueError(f"Environment variable '{key.upper()}' must be a positive integer, got {value}.")
        return value

    def get_similarity_val(self, key: str, default: float | None = None) -> float:
        """Read a cosine similarity threshold, which must lie in [-1, 1].

        Raises:
            ValueError: If the value is missing or out of range.
        """
        value = float(self.get_number_val(key, default=default))
        if not -1.0 <= value <= 1.0:
            raise ValueError(f"Environment variable '{key.upper()}' must be between -1 and 1, got {value}.")
        return value

    def get_logger(self) -> logging.Logger:
        return self._logger
