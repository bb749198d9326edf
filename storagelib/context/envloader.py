import os
from pathlib import Path
from typing import Any, Optional

import storagelib.context._globals as _globals
from storagelib.util.fileio import FileIO


class EnvLoader:
    """
    Static utility for loading, caching, and reading environment variables.

    Values come from an optional .env file layered under the process environment:
    os.environ always wins over the file.
    """

    _env_path: Optional[Path] = None
    _cache: dict = {}

    @staticmethod
    def load_env(path: Optional[Path] = None) -> dict:
        """
        Loads variables from a .env file (if present) and caches them.

        Args:
            path (Path): .env file to read; defaults to <cwd>/.env.

        Returns:
            dict: Variables parsed from the file (empty when the file is missing).
        """
        path = Path(path) if path is not None else _globals.env_file()

        if EnvLoader._cache and EnvLoader._env_path == path:
            return EnvLoader._cache

        env_dict = FileIO.read(path) if path.exists() else {}
        EnvLoader._cache = {str(k): str(v) for k, v in env_dict.items()}
        EnvLoader._env_path = path
        return EnvLoader._cache

    @staticmethod
    def get(key: str, required: bool = False, default: Any = None) -> Any:
        """
        Retrieves a variable from os.environ, falling back to the loaded .env file.

        Args:
            key (str): The environment variable name.
            required (bool): If True, raise when the key is missing and no default is given.
            default (Any): Value returned when the key is missing.

        Returns:
            Any: The resolved value.

        Raises:
            RuntimeError: If required and missing.
        """
        if not isinstance(key, str):
            raise TypeError("Key must be a string")

        if key in os.environ:
            return os.environ[key]

        cache = EnvLoader._cache if EnvLoader._env_path is not None else EnvLoader.load_env()
        if key in cache:
            return cache[key]

        if required and default is None:
            raise RuntimeError(f"[EnvLoader.get] Missing required env var: {key}")
        return default

    @staticmethod
    def has(key: str) -> bool:
        return EnvLoader.get(key) is not None

    @staticmethod
    def all() -> dict:
        return dict(EnvLoader._cache)

    @staticmethod
    def clear() -> None:
        """
        Clears the internal environment cache.
        Useful for reloading or testing.
        """
        EnvLoader._cache = {}
        EnvLoader._env_path = None


env = EnvLoader
