"""Configuration commands for synap CLI."""

from cyclopts import App

from synap.config import default_config, get_config

config_app = App(name="config", help="View or update configuration")


@config_app.command
def set(key: str, value: str) -> None:
    """Set a configuration setting.

    Args:
        key: Configuration key (defaultType, defaultTags, editor, dateFormat, dataDir)
        value: New value; comma-separated for defaultTags, "null" clears editor and dataDir
    """
    from synap.cli import emit

    stored = get_config().set(key, value)
    emit({"key": key, "value": stored})


@config_app.command
def unset(key: str) -> None:
    """Restore a configuration setting to its default."""
    from synap.cli import emit

    config = get_config()
    config.unset(key)
    emit({"key": key, "value": config.get(key)})


@config_app.command
def get(key: str) -> None:
    """Get the value of a configuration setting."""
    from synap.cli import emit

    emit({"key": key, "value": get_config().get(key)})


@config_app.command(name="list")
def list_config() -> None:
    """List all configuration settings with defaults and resolved paths."""
    from synap.cli import emit

    config = get_config()
    emit(
        {
            "config": config.list(),
            "defaults": default_config(),
            "paths": {"configDir": str(config.config_dir), "dataDir": str(config.data_dir)},
            "warnings": config.warnings,
        }
    )


@config_app.command
def reset() -> None:
    """Reset configuration to defaults."""
    from synap.cli import emit

    emit({"config": get_config().reset(), "message": "Config reset to defaults"})
