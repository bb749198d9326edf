import json
from pathlib import Path

import toml
import yaml


class FileIO:
    """
    Static methods for reading and writing settings files in multiple formats.
    Supports: TOML, JSON, ENV, YAML, YML.
    """
    SUPPORTED_FORMATS = ["toml", "json", "env", "yml", "yaml"]
    DOTFILE_MAP = {
        ".env": "env",
    }

    @staticmethod
    def resolve_extension(path: str | Path) -> str:
        """
        Determines the effective filetype of a given path, including support for dotfiles.

        Raises:
            ValueError: If the filetype is unsupported or cannot be inferred.
        """
        path = Path(path)
        suffix = path.suffix.lstrip(".").lower()
        name = path.name.lower()

        if suffix and suffix in FileIO.SUPPORTED_FORMATS:
            return suffix
        if name in FileIO.DOTFILE_MAP:
            return FileIO.DOTFILE_MAP[name]
        if name.endswith(".env"):
            return "env"

        raise ValueError(f"[FileIO] Unsupported or unknown filetype for path: {path}")

    @staticmethod
    def read(path: str | Path) -> dict:
        """
        Reads a settings file based on its extension and returns parsed content.

        Raises:
            FileNotFoundError: If the file does not exist.
            ValueError: If the extension is unsupported or the content is not a mapping.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"[FileIO.read] File not found: {path}")

        ext = FileIO.resolve_extension(path)

        if ext == "toml":
            data = toml.load(path)
        elif ext == "json":
            data = json.loads(path.read_text(encoding="utf-8"))
        elif ext == "env":
            data = FileIO.parse_env(path.read_text(encoding="utf-8"))
        else:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}

        if not isinstance(data, dict):
            raise ValueError(f"[FileIO.read] Parsed content of {path} is not a mapping: {type(data).__name__}")
        return data

    @staticmethod
    def parse_env(text: str) -> dict:
        content = {}
        for line in text.splitlines():
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            if line.startswith("export "):
                line = line[len("export "):]
            k, v = line.split("=", 1)
            content[k.strip()] = v.strip().strip('"').strip("'")
        return content

    @staticmethod
    def write(path: str | Path, data: dict) -> Path:
        """
        Serialize `data` to `path` in the format implied by its extension, replacing the file.
        """
        path = Path(path)
        ext = FileIO.resolve_extension(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        if ext == "toml":
            text = toml.dumps(data)
        elif ext == "json":
            text = json.dumps(data, indent=2)
        elif ext == "env":
            text = "".join(f'{k}="{v}"\n' for k, v in data.items())
        else:
            text = yaml.safe_dump(data, sort_keys=False)

        path.write_text(text, encoding="utf-8")
        return path
