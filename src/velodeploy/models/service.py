"""Service descriptor model for the platform supervisor."""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class ServiceDescriptor(BaseModel):
    """How launchd runs the Velociraptor service.

    Attributes:
        label: launchd job label
        program: Executable path
        arguments: Arguments passed after the executable
        run_at_load: Start the job when it is loaded (i.e. at login)
        keep_alive_on_failure: Restart after an unexpected exit, not a clean one
        stdout_path: File receiving standard output
        stderr_path: File receiving standard error
        working_directory: Working directory of the process
        environment: Environment variables of the process
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    label: str = Field(..., description="launchd job label")
    program: Path = Field(..., description="Executable path")
    arguments: list[str] = Field(default_factory=list, description="Arguments")
    run_at_load: bool = Field(default=False, description="Start at load/login")
    keep_alive_on_failure: bool = Field(
        default=True, description="Restart after unexpected exit"
    )
    stdout_path: Path = Field(..., description="Standard output redirect")
    stderr_path: Path = Field(..., description="Standard error redirect")
    working_directory: Path = Field(..., description="Working directory")
    environment: dict[str, str] = Field(
        default_factory=dict, description="Environment variables"
    )

    @property
    def program_arguments(self) -> list[str]:
        """The full argv launchd executes."""
        return [str(self.program), *self.arguments]
