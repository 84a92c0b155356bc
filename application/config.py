import os
from pathlib import Path
from typing import List, Mapping, Optional

CREDENTIAL_ENV = "AIRTABLE_KEY"

DEFAULT_API_URL = "https://api.airtable.com/v0"
DEFAULT_BASE_ID = "appLSCQFAClFemq86"
DEFAULT_TABLE = "GA"
DEFAULT_VIEW = "Approved"


def default_concurrency() -> int:
    return os.cpu_count() or 2


def default_cargo_home() -> Path:
    return Path(os.environ.get("CARGO_HOME") or Path.home() / ".cargo")


def default_gopath() -> Path:
    return Path(os.environ.get("GOPATH") or Path.home() / "go")


class ProvisionerConfig:
    """
    Runtime settings for both subcommands.

    Values come from the environment first and are then overridden by CLI
    flags in main.py. The catalog credential is held here and passed
    explicitly to the catalog client; nothing below main.py reads it from
    the environment.
    """

    def __init__(
        self,
        airtable_key: Optional[str] = None,
        api_url: str = DEFAULT_API_URL,
        base_id: str = DEFAULT_BASE_ID,
        table: str = DEFAULT_TABLE,
        view: str = DEFAULT_VIEW,
        install_log: Optional[Path] = None,
        onboarding_document: Optional[Path] = None,
        log_level: str = "INFO",
        concurrency: Optional[int] = None,
        install_timeout: float = 1800.0,
        fetch_timeout: float = 30.0,
        max_attempts: int = 4,
        ssh_host: str = "0.0.0.0",
        ssh_port: int = 22,
        host_key: Path = Path("ssh_key"),
        allowed_principals: Optional[List[str]] = None,
        session_timeout: float = 30 * 60.0,
        status_host: str = "127.0.0.1",
        status_port: Optional[int] = None
    ):
        home = Path.home()
        self.airtable_key = airtable_key or None
        self.api_url = api_url.rstrip('/')
        self.base_id = base_id
        self.table = table
        self.view = view
        self.install_log = install_log or home / ".local" / "state" / "cargo-cult" / "install-log.jsonl"
        self.onboarding_document = onboarding_document or home / "ONBOARDING.md"
        self.log_level = log_level.upper()
        self.concurrency = concurrency or default_concurrency()
        self.install_timeout = install_timeout
        self.fetch_timeout = fetch_timeout
        self.max_attempts = max_attempts
        self.ssh_host = ssh_host
        self.ssh_port = ssh_port
        self.host_key = host_key
        self.allowed_principals = allowed_principals or []
        self.session_timeout = session_timeout
        self.status_host = status_host
        self.status_port = status_port

    @classmethod
    def from_environment(cls, environ: Optional[Mapping[str, str]] = None) -> "ProvisionerConfig":
        env = os.environ if environ is None else environ

        kwargs = {"airtable_key": env.get(CREDENTIAL_ENV, "").strip() or None}
        for key, name in (("base_id", "AIRTABLE_BASE_ID"), ("table", "AIRTABLE_TABLE"),
                          ("view", "AIRTABLE_VIEW"), ("log_level", "CARGO_CULT_LOG_LEVEL")):
            if env.get(name):
                kwargs[key] = env[name]
        if env.get("CARGO_CULT_INSTALL_LOG"):
            kwargs["install_log"] = Path(env["CARGO_CULT_INSTALL_LOG"]).expanduser()
        if env.get("CARGO_CULT_ONBOARDING"):
            kwargs["onboarding_document"] = Path(env["CARGO_CULT_ONBOARDING"]).expanduser()

        return cls(**kwargs)
