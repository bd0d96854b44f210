"""Runtime configuration (read from the environment, replaceable during tests/runtime)."""
import os
from typing import NamedTuple


class ConfigState(NamedTuple):
    database_url: str
    echo_sql: bool
    log_level: str


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default) in ("1", "true", "True", "yes", "on")


def from_env() -> ConfigState:
    return ConfigState(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./campus_connect.db"),
        echo_sql=_env_flag("SQL_ECHO"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


state = from_env()


def set_database_url(url: str):
    global state
    state = state._replace(database_url=url)


def set_echo_sql(value: bool):
    global state
    state = state._replace(echo_sql=bool(value))


def set_log_level(level: str):
    global state
    state = state._replace(log_level=level.upper())


def database_url() -> str:
    return state.database_url


def echo_sql() -> bool:
    return state.echo_sql


def log_level() -> str:
    return state.log_level
