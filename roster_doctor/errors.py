"""Exception types shared by the core engine and the CLI."""

from __future__ import annotations


class RosterDoctorError(Exception):
    pass


class MissingColumnError(RosterDoctorError):
    """A mandatory header could not be found by exact name in the header row."""

    def __init__(self, missing: list[str], source: str | None = None) -> None:
        self.missing = list(missing)
        self.source = source
        where = f" in '{source}'" if source else ""
        super().__init__(f"Required column(s) not found{where}: {', '.join(self.missing)}")


class InvalidInputError(RosterDoctorError):
    pass
