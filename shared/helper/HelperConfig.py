"""Environment backed configuration for the PDF chat backend."""

import logging
import os
from typing import Any

_MISSING = object()


class HelperConfig:
    """Typed access to environment variables.

    Keys are case-insensitive. An unset or empty variable falls back to the
    default; without a default the key is required and reading it raises
    ValueError, so misconfiguration surfaces at startup.
    """

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    def _raw(self, key: str, default: Any) -> Any:
        """Return the stripped raw value, or _MISSING if unset and a default exists."""
        raw = (os.getenv(key.upper()) or "").strip()
        if raw:
            return raw
        if default is None:
            raise ValueError(f"Environment variable '{key.upper()}' is not set.")
        return _MISSING

    def get_string_val(self, key: str, default: str | None = None) -> str:
        raw = self._raw(key, default)
        return default if raw is _MISSING else raw

    def get_number_val(self, key: str, default: float | int | None = None) -> float | int:
        """Read an int, or a float when the value contains a dot.

        Raises:
            ValueError: If the key is required and unset, or not a number.
        """
        raw = self._raw(key, default)
        if raw is _MISSING:
            return default
        try:
            return float(raw) if "." in raw else int(raw)
        except ValueError:
            raise ValueError(f"Environment variable '{key.upper()}' is not a valid number: '{raw}'.")

    def get_int_val(self, key: str, default: int | None = None, minimum: int | None = None) -> int:
        """Read an integer, optionally enforcing a lower bound.

        Raises:
            ValueError: If the key is required and unset, not numeric, or below minimum.
        """
        value = int(self.get_number_val(key, default=default))
        if minimum is not None and value < minimum:
            raise ValueError(f"Environment variable '{key.upper()}' must be >= {minimum}, got {value}.")
        return value

    def get_bool_val(self, key: str, default: bool | None = None) -> bool:
        raw = self._raw(key, default)
        if raw is _MISSING:
            return default
        return raw.lower() in ("true", "1", "yes")

    def get_list_val(self, key: str, default: list[str] | None = None, separator: str = ",", element_type: type = str) -> list:
        """Read a list written as "[elem1,elem2,...]".

        Raises:
            ValueError: If the key is required and unset, the brackets are
                missing, or an element cannot be cast to element_type.
        """
        raw = self._raw(key, default)
        if raw is _MISSING:
            return default
        if not (raw.startswith("[") and raw.endswith("]")):
            raise ValueError(
                f"Environment variable '{key.upper()}' must look like '[elem1{separator}elem2]'. Got: '{raw}'"
            )
        elements = [value.strip() for value in raw[1:-1].split(separator) if value.strip()]
        try:
            return [element_type(element) for element in elements]
        except ValueError as e:
            raise ValueError(f"Environment variable '{key.upper()}' has an invalid {element_type.__name__} element: {e}")

    def get_logger(self) -> logging.Logger:
        return self._logger
