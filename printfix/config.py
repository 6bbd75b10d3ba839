"""
Config file loading for printfix.

Reads ~/.config/printfix/config.toml and returns structured config.
Never raises — always returns a valid dict with sensible defaults.
"""

from pathlib import Path

_CONFIG_PATH = Path.home() / ".config" / "printfix" / "config.toml"

DEFAULTS: dict = {
    "external_timeout": 60.0,   # seconds, Windows PowerShell child process
    "session_timeout": 300.0,   # seconds, pwsh session / remote envelope
    "powershell_path": None,
    "pwsh_path": None,
    "history_limit": 50,
}


def load_config(path: Path | None = None) -> dict:
    """
    Load and return printfix config from TOML file.

    Missing file, parse errors, or bad shapes all return the defaults.
    Each key is validated on its own, so one bad value does not discard
    the rest of the file.
    """
    config_path = path or _CONFIG_PATH
    config = dict(DEFAULTS)

    if not config_path.is_file():
        return config

    try:
        raw = config_path.read_bytes()
    except OSError:
        return config

    try:
        import tomllib
    except ModuleNotFoundError:
        try:
            import tomli as tomllib  # type: ignore[no-redef]
        except ModuleNotFoundError:
            return config

    try:
        data = tomllib.loads(raw.decode("utf-8"))
    except Exception:
        return config

    # Settings may live at top level or under an [engine] table
    engine = data.get("engine")
    if isinstance(engine, dict):
        data = {**data, **engine}

    for key in ("external_timeout", "session_timeout"):
        value = data.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
            config[key] = float(value)

    for key in ("powershell_path", "pwsh_path"):
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            config[key] = value.strip()

    limit = data.get("history_limit")
    if isinstance(limit, int) and not isinstance(limit, bool) and limit > 0:
        config["history_limit"] = limit

    return config
