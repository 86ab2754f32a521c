from typing import Literal

from pydantic import BaseModel


class EnvConfig(BaseModel):
    """
    One engine setting a client declares.

    Attributes:
        env_key (str): The key without the "{TYPE}_{ENGINE}_" prefix (e.g. "PATH").
        val_type (str): How the value is parsed.
        default: Fallback value. None marks the setting as required.
    """

    env_key: str
    val_type: Literal["string", "number", "bool", "list", "positive_int"] = "string"
    default: str | int | float | bool | list | None = None
