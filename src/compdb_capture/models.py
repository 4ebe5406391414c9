"""Pydantic models for compilation database entries."""

from pydantic import BaseModel, ConfigDict, Field


class CompileRecord(BaseModel):
    """One entry of a compile_commands.json database.

    Field order is the serialized order.
    """

    model_config = ConfigDict(frozen=True)

    directory: str = Field(..., description="Working directory of the compile step")
    command: str = Field(..., description="Verbatim compiler command line")
    file: str = Field(default="", description="Source file compiled, may be empty")

    def to_json(self) -> str:
        """Serialize to a compact, self-contained JSON object."""
        return self.model_dump_json()
