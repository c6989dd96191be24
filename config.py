"""
config.py – Centralised configuration loaded from environment variables.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any

from dotenv import load_dotenv

load_dotenv()

DEFAULT_CASE_PREFIX = "Autotest: "
DEFAULT_RUN_NAME = "Test run"


class RunMode(str, Enum):
    DO_NOTHING = "do_nothing"               # reporter stays silent
    CREATE_CASES = "create_cases"           # build the catalogue, skip every test
    PUBLISH_RAN_TESTS = "publish_ran_tests" # run tests, then publish a run with results

    @classmethod
    def parse(cls, value: str | RunMode) -> RunMode:
        try:
            return cls(value)
        except ValueError:
            raise ValueError(
                f"Unknown TestRail mode '{value}'. "
                f"Valid options: {', '.join(m.value for m in cls)}"
            ) from None


class Settings:
    """Validated, read-only application settings."""

    # ── TestRail connection ─────────────────────────────────
    TESTRAIL_DOMAIN: str = os.getenv("TESTRAIL_DOMAIN", "")
    TESTRAIL_USERNAME: str = os.getenv("TESTRAIL_USERNAME", "")
    TESTRAIL_API_TOKEN: str = os.getenv("TESTRAIL_API_TOKEN", "")
    TESTRAIL_PROJECT_ID: int = int(os.getenv("TESTRAIL_PROJECT_ID", "0") or 0)

    # ── Behaviour ───────────────────────────────────────────
    TESTRAIL_MODE: str = os.getenv("TESTRAIL_MODE", RunMode.DO_NOTHING.value).lower().strip()
    TESTRAIL_TESTS_ROOT_DIR: str = os.getenv("TESTRAIL_TESTS_ROOT_DIR", "")
    TESTRAIL_CASE_PREFIX: str = os.getenv("TESTRAIL_CASE_PREFIX", DEFAULT_CASE_PREFIX)
    TESTRAIL_RUN_NAME: str = os.getenv("TESTRAIL_RUN_NAME", DEFAULT_RUN_NAME)

    @classmethod
    def validate(cls) -> None:
        """Halt early if required values are missing."""
        if cls.TESTRAIL_MODE not in {m.value for m in RunMode}:
            sys.exit(
                f"[ERROR] Unknown TESTRAIL_MODE='{cls.TESTRAIL_MODE}'.\n"
                f"  → Valid options: {', '.join(m.value for m in RunMode)}"
            )

        missing = ReporterOptions.from_settings().missing()

        if missing:
            sys.exit(
                f"[ERROR] Missing required environment variables: {', '.join(missing)}\n"
                "  → Copy .env.example to .env and fill in all values."
            )


_ENV_NAMES = {
    "domain": "TESTRAIL_DOMAIN",
    "username": "TESTRAIL_USERNAME",
    "api_token": "TESTRAIL_API_TOKEN",
    "project_id": "TESTRAIL_PROJECT_ID",
}


@dataclass
class ReporterOptions:
    """Resolved options for one reporter instance."""

    domain: str = ""
    username: str = ""
    api_token: str = ""
    project_id: int = 0
    tests_root_dir: str = ""
    case_prefix: str = DEFAULT_CASE_PREFIX
    mode: RunMode = RunMode.DO_NOTHING
    run_name: str = DEFAULT_RUN_NAME

    def __post_init__(self) -> None:
        self.mode = RunMode.parse(self.mode)
        self.project_id = int(self.project_id or 0)

    @classmethod
    def from_settings(cls, **overrides: Any) -> ReporterOptions:
        """Build options from Settings; non-None overrides win."""
        opts = cls(
            domain=Settings.TESTRAIL_DOMAIN,
            username=Settings.TESTRAIL_USERNAME,
            api_token=Settings.TESTRAIL_API_TOKEN,
            project_id=Settings.TESTRAIL_PROJECT_ID,
            tests_root_dir=Settings.TESTRAIL_TESTS_ROOT_DIR,
            case_prefix=Settings.TESTRAIL_CASE_PREFIX,
            mode=RunMode.parse(Settings.TESTRAIL_MODE),
            run_name=Settings.TESTRAIL_RUN_NAME,
        )
        return opts.merged(**overrides)

    def merged(self, **overrides: Any) -> ReporterOptions:
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def missing(self) -> list[str]:
        """Names of the connection settings that are still empty."""
        return [env for attr, env in _ENV_NAMES.items() if not getattr(self, attr)]

    def to_dict(self, include_token: bool = False) -> dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["mode"] = self.mode.value
        if not include_token:
            data.pop("api_token")
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ReporterOptions:
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})
